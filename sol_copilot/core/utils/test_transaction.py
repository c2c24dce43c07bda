import base64

import base58
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction, VersionedTransaction

from sol_copilot.core.errors import PayloadDecodeError
from sol_copilot.core.models import TransactionFormat
from sol_copilot.core.utils.transaction import (
    decode_transaction,
    fee_payer_of,
    interpret_transaction,
    recent_blockhash_of,
    try_interpret_transaction,
    wire_candidates,
    with_fresh_blockhash,
)


def _transfer_ix(sender: Keypair, lamports: int = 1_000):
    return transfer(
        TransferParams(
            from_pubkey=sender.pubkey(),
            to_pubkey=Keypair().pubkey(),
            lamports=lamports,
        )
    )


def _legacy_tx(payer: Keypair) -> Transaction:
    message = Message.new_with_blockhash([_transfer_ix(payer)], payer.pubkey(), Hash.default())
    return Transaction.new_unsigned(message)


def _versioned_tx(payer: Keypair) -> VersionedTransaction:
    message = MessageV0.try_compile(payer.pubkey(), [_transfer_ix(payer)], [], Hash.default())
    return VersionedTransaction(message, [payer])


def test_versioned_payload_is_interpreted_as_versioned():
    payer = Keypair()
    encoded = base58.b58encode(bytes(_versioned_tx(payer))).decode()

    prepared = decode_transaction(encoded)

    assert prepared.format == TransactionFormat.VERSIONED
    assert isinstance(prepared.transaction, VersionedTransaction)
    assert fee_payer_of(prepared) == payer.pubkey()


def test_legacy_payload_falls_back_to_legacy():
    payer = Keypair()
    raw = bytes(_legacy_tx(payer))

    prepared = interpret_transaction(raw)

    assert prepared.format == TransactionFormat.LEGACY
    assert isinstance(prepared.transaction, Transaction)
    assert prepared.encoded_payload == raw


def test_base64_payload_is_accepted():
    payer = Keypair()
    encoded = base64.b64encode(bytes(_versioned_tx(payer))).decode()

    prepared = decode_transaction(encoded)

    assert prepared.format == TransactionFormat.VERSIONED


def test_bytes_payload_is_treated_as_text():
    payer = Keypair()
    encoded = base58.b58encode(bytes(_legacy_tx(payer)))

    prepared = decode_transaction(encoded)

    assert prepared.format == TransactionFormat.LEGACY


@pytest.mark.parametrize("payload", ["", "   ", None])
def test_empty_payload_raises_decode_error(payload):
    with pytest.raises(PayloadDecodeError):
        decode_transaction(payload)


def test_undecodable_text_raises_decode_error():
    with pytest.raises(PayloadDecodeError):
        wire_candidates("not*a*payload")


def test_bytes_that_are_no_transaction_raise_decode_error():
    assert try_interpret_transaction(b"\x01\x02\x03") is None
    with pytest.raises(PayloadDecodeError):
        interpret_transaction(b"\x01\x02\x03")
    with pytest.raises(PayloadDecodeError):
        decode_transaction(base58.b58encode(b"\x01\x02\x03").decode())


def test_legacy_refresh_sets_fee_payer_and_blockhash():
    original_payer = Keypair()
    wallet = Keypair()
    prepared = interpret_transaction(bytes(_legacy_tx(original_payer)))
    fresh = Hash.new_unique()

    refreshed = with_fresh_blockhash(prepared, fresh, wallet.pubkey())

    assert refreshed.format == TransactionFormat.LEGACY
    assert fee_payer_of(refreshed) == wallet.pubkey()
    assert recent_blockhash_of(refreshed) == fresh
    assert refreshed.encoded_payload == bytes(refreshed.transaction)
    # Instructions survive the rebuild.
    assert len(refreshed.transaction.message.instructions) == 1


def test_versioned_refresh_keeps_embedded_fee_payer():
    payer = Keypair()
    prepared = interpret_transaction(bytes(_versioned_tx(payer)))
    fresh = Hash.new_unique()

    refreshed = with_fresh_blockhash(prepared, fresh, Keypair().pubkey())

    assert refreshed.format == TransactionFormat.VERSIONED
    assert fee_payer_of(refreshed) == payer.pubkey()
    assert recent_blockhash_of(refreshed) == fresh


def test_legacy_refresh_keeps_account_roles():
    payer = Keypair()
    original = _legacy_tx(payer)
    prepared = interpret_transaction(bytes(original))

    refreshed = with_fresh_blockhash(prepared, Hash.new_unique(), payer.pubkey())

    before, after = original.message, refreshed.transaction.message
    assert list(after.account_keys) == list(before.account_keys)
    assert after.header.num_required_signatures == before.header.num_required_signatures
    assert (
        after.header.num_readonly_signed_accounts
        == before.header.num_readonly_signed_accounts
    )
    # The system program stays the only read-only unsigned account.
    assert after.header.num_readonly_unsigned_accounts == 1
    assert bytes(after.instructions[0].data) == bytes(before.instructions[0].data)
