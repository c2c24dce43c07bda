from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any, Protocol

from loguru import logger
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from sol_copilot.core.constants.base import TOKEN_PROGRAM_ID
from sol_copilot.core.errors import SubmissionRejected

WALLET_EVENTS = ("connect", "disconnect", "accountChanged")

WalletCallback = Callable[..., Any]


class WalletProvider(Protocol):
    @property
    def address(self) -> str: ...

    async def connect(self) -> str: ...

    async def disconnect(self) -> None: ...

    def on(self, event: str, callback: WalletCallback) -> None: ...

    def off(self, event: str, callback: WalletCallback) -> None: ...

    async def get_balance(self, address: str) -> int: ...

    async def get_token_accounts(self, address: str) -> list[Any]: ...

    async def sign_and_send_transaction(
        self, transaction: VersionedTransaction | Transaction
    ) -> str: ...


def load_keypair(secret: str) -> Keypair:
    """Keypair from a base58 secret or a JSON byte array (solana-keygen format)."""
    text = secret.strip()
    if text.startswith("["):
        return Keypair.from_bytes(bytes(json.loads(text)))
    return Keypair.from_base58_string(text)


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: dict[str, list[WalletCallback]] = {e: [] for e in WALLET_EVENTS}

    def on(self, event: str, callback: WalletCallback) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown wallet event: {event}")
        self._listeners[event].append(callback)

    def off(self, event: str, callback: WalletCallback) -> None:
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(*args)
            except Exception as exc:  # noqa: BLE001
                logger.error(f"Wallet '{event}' listener failed: {exc}")


class LocalKeypairWallet(EventEmitter):
    """Wallet backed by a local keypair and an RPC handle."""

    def __init__(self, keypair: Keypair, client: Any):
        super().__init__()
        self.keypair = keypair
        self.client = client
        self.connected = False

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    async def connect(self) -> str:
        self.connected = True
        self.emit("connect", self.address)
        return self.address

    async def disconnect(self) -> None:
        self.connected = False
        self.emit("disconnect")

    def switch_account(self, keypair: Keypair | None) -> None:
        if keypair is None:
            self.connected = False
            self.emit("accountChanged", None)
            return
        self.keypair = keypair
        self.emit("accountChanged", self.address)

    async def get_balance(self, address: str) -> int:
        resp = await self.client.get_balance(Pubkey.from_string(address))
        return int(resp.value)

    async def get_token_accounts(self, address: str) -> list[Any]:
        resp = await self.client.get_token_accounts_by_owner_json_parsed(
            Pubkey.from_string(address),
            TokenAccountOpts(program_id=Pubkey.from_string(TOKEN_PROGRAM_ID)),
        )
        return list(resp.value)

    def sign(
        self, transaction: VersionedTransaction | Transaction
    ) -> VersionedTransaction | Transaction:
        if isinstance(transaction, VersionedTransaction):
            return VersionedTransaction(transaction.message, [self.keypair])
        return Transaction(
            [self.keypair], transaction.message, transaction.message.recent_blockhash
        )

    async def sign_and_send_transaction(
        self, transaction: VersionedTransaction | Transaction
    ) -> str:
        signed = self.sign(transaction)
        resp = await self.client.send_raw_transaction(
            bytes(signed), opts=TxOpts(preflight_commitment=Confirmed)
        )
        signature = resp.value
        logger.info(f"Submitted transaction {signature}")
        confirmation = await self.client.confirm_transaction(
            signature, commitment=Confirmed
        )
        statuses = getattr(confirmation, "value", None) or []
        status = statuses[0] if statuses else None
        if status is not None and status.err:
            logger.error(f"Transaction {signature} failed on-chain: {status.err}")
            raise SubmissionRejected(
                f"Transaction {signature} failed on-chain: {status.err}"
            )
        return str(signature)
