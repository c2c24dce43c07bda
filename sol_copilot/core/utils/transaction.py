from __future__ import annotations

import base64
import binascii

import base58
from loguru import logger
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from sol_copilot.core.errors import PayloadDecodeError
from sol_copilot.core.models import PreparedTransaction, TransactionFormat

# Characters that can appear in base64 text but never in base58 text.
_BASE64_ONLY_CHARS = frozenset("+/=0OIl")


def _payload_text(data: str | bytes | None) -> str:
    if isinstance(data, bytes | bytearray):
        try:
            data = bytes(data).decode("ascii")
        except UnicodeDecodeError as exc:
            raise PayloadDecodeError("Transaction payload is not ASCII text") from exc
    text = str(data or "").strip()
    if not text:
        raise PayloadDecodeError("Swap response did not include a transaction payload")
    return text


def wire_candidates(data: str | bytes | None) -> list[bytes]:
    """Raw byte decodings of the payload text, most likely encoding first.

    The DEX returns Solana transactions base58-encoded; base64 is tried after
    it, or alone when the text has characters outside the base58 alphabet.
    """
    text = _payload_text(data)
    candidates: list[bytes] = []
    if not _BASE64_ONLY_CHARS.intersection(text):
        try:
            candidates.append(base58.b58decode(text))
        except ValueError as exc:
            logger.debug(f"Payload is not base58: {exc}")
    try:
        candidates.append(base64.b64decode(text, validate=True))
    except (binascii.Error, ValueError) as exc:
        logger.debug(f"Payload is not base64: {exc}")
    if not candidates:
        raise PayloadDecodeError("Transaction payload is neither base58 nor base64")
    return candidates


def decode_transaction(data: str | bytes | None) -> PreparedTransaction:
    """Decode the wire text and interpret the first decoding that parses."""
    candidates = wire_candidates(data)
    for raw in candidates:
        prepared = try_interpret_transaction(raw)
        if prepared is not None:
            return prepared
    sizes = ", ".join(str(len(raw)) for raw in candidates)
    raise PayloadDecodeError(
        f"Payload ({sizes} bytes decoded) is neither a versioned nor a legacy transaction"
    )


def _interpret_versioned(raw: bytes) -> VersionedTransaction | None:
    try:
        tx = VersionedTransaction.from_bytes(raw)
    except Exception as exc:  # noqa: BLE001
        logger.debug(f"Payload is not a versioned transaction: {exc}")
        return None
    # A legacy message also deserializes here; only v0 messages count as versioned.
    if not isinstance(tx.message, MessageV0):
        return None
    return tx


def _interpret_legacy(raw: bytes) -> Transaction | None:
    try:
        return Transaction.from_bytes(raw)
    except Exception as exc:  # noqa: BLE001
        logger.debug(f"Payload is not a legacy transaction: {exc}")
        return None


def try_interpret_transaction(raw: bytes) -> PreparedTransaction | None:
    """Interpret raw bytes as a versioned transaction, else as a legacy one."""
    versioned = _interpret_versioned(raw)
    if versioned is not None:
        return PreparedTransaction(
            encoded_payload=raw,
            format=TransactionFormat.VERSIONED,
            transaction=versioned,
        )

    legacy = _interpret_legacy(raw)
    if legacy is not None:
        return PreparedTransaction(
            encoded_payload=raw, format=TransactionFormat.LEGACY, transaction=legacy
        )
    return None


def interpret_transaction(raw: bytes) -> PreparedTransaction:
    prepared = try_interpret_transaction(raw)
    if prepared is None:
        raise PayloadDecodeError(
            f"Payload of {len(raw)} bytes is neither a versioned nor a legacy transaction"
        )
    return prepared


def _account_flags(message: Message) -> list[tuple[bool, bool]]:
    """(is_signer, is_writable) per account key, read from the message header.

    Signed keys come first, each group ends with its read-only keys.
    """
    header = message.header
    num_keys = len(message.account_keys)
    num_signers = header.num_required_signatures
    writable_signers = num_signers - header.num_readonly_signed_accounts
    writable_unsigned_end = num_keys - header.num_readonly_unsigned_accounts
    flags = []
    for idx in range(num_keys):
        if idx < num_signers:
            flags.append((True, idx < writable_signers))
        else:
            flags.append((False, idx < writable_unsigned_end))
    return flags


def _decompile_legacy_instructions(message: Message) -> list[Instruction]:
    keys = list(message.account_keys)
    flags = _account_flags(message)
    instructions: list[Instruction] = []
    for compiled in message.instructions:
        accounts = [
            AccountMeta(keys[idx], is_signer=flags[idx][0], is_writable=flags[idx][1])
            for idx in bytes(compiled.accounts)
        ]
        instructions.append(
            Instruction(keys[compiled.program_id_index], bytes(compiled.data), accounts)
        )
    return instructions


def _refresh_versioned(tx: VersionedTransaction, blockhash: Hash) -> VersionedTransaction:
    msg = tx.message
    refreshed = MessageV0(
        msg.header,
        list(msg.account_keys),
        blockhash,
        list(msg.instructions),
        list(msg.address_table_lookups),
    )
    return VersionedTransaction.populate(refreshed, list(tx.signatures))


def _refresh_legacy(tx: Transaction, blockhash: Hash, fee_payer: Pubkey) -> Transaction:
    instructions = _decompile_legacy_instructions(tx.message)
    message = Message.new_with_blockhash(instructions, fee_payer, blockhash)
    return Transaction.new_unsigned(message)


def with_fresh_blockhash(
    prepared: PreparedTransaction, blockhash: Hash, fee_payer: Pubkey
) -> PreparedTransaction:
    """Rewrite the recent blockhash; legacy transactions also get ``fee_payer``.

    Versioned messages already embed their fee payer.
    """
    if prepared.format == TransactionFormat.VERSIONED:
        tx = _refresh_versioned(prepared.transaction, blockhash)
    else:
        tx = _refresh_legacy(prepared.transaction, blockhash, fee_payer)
    return PreparedTransaction(
        encoded_payload=bytes(tx), format=prepared.format, transaction=tx
    )


def fee_payer_of(prepared: PreparedTransaction) -> Pubkey:
    return prepared.transaction.message.account_keys[0]


def recent_blockhash_of(prepared: PreparedTransaction) -> Hash:
    return prepared.transaction.message.recent_blockhash
