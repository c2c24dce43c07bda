from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from solana.rpc.types import TokenAccountOpts
from solders.pubkey import Pubkey

from sol_copilot.core.adapters.BaseAdapter import BaseAdapter
from sol_copilot.core.constants.base import (
    ADAPTER_BALANCE,
    LAMPORTS_PER_SOL,
    TOKEN_PROGRAM_ID,
    WRAPPED_SOL_MINT,
)
from sol_copilot.core.errors import RpcError


@dataclass(frozen=True)
class WalletBalances:
    native_lamports: int
    tokens: dict[str, int] = field(default_factory=dict)
    decimals: dict[str, int] = field(default_factory=dict)

    @property
    def native(self) -> Decimal:
        return Decimal(self.native_lamports) / Decimal(LAMPORTS_PER_SOL)

    @classmethod
    def empty(cls) -> WalletBalances:
        return cls(native_lamports=0)


def _parsed_token_amount(keyed_account: Any) -> tuple[str, int, int]:
    parsed = keyed_account.account.data.parsed
    info = parsed["info"]
    token_amount = info["tokenAmount"]
    return str(info["mint"]), int(token_amount["amount"]), int(token_amount["decimals"])


class BalanceAdapter(BaseAdapter):
    adapter_type = ADAPTER_BALANCE

    def __init__(self, config: dict[str, Any] | None = None):
        super().__init__("balance_adapter", config)
        self.token_program = Pubkey.from_string(TOKEN_PROGRAM_ID)

    async def fetch_balances(self, handle: Any, wallet_address: str) -> WalletBalances:
        """Native lamports plus every SPL token account owned by the wallet.

        Zero-amount accounts are kept. Any failure, including one of the two
        calls succeeding while the other fails, raises a single ``RpcError``.
        """
        try:
            owner = Pubkey.from_string(wallet_address)
        except ValueError as exc:
            raise RpcError(f"Invalid wallet address {wallet_address!r}") from exc

        try:
            native_resp = await handle.get_balance(owner)
            native_lamports = int(native_resp.value)
        except Exception as exc:  # noqa: BLE001
            raise RpcError(f"getBalance failed for {wallet_address}: {exc}") from exc

        try:
            accounts_resp = await handle.get_token_accounts_by_owner_json_parsed(
                owner, TokenAccountOpts(program_id=self.token_program)
            )
            accounts = list(accounts_resp.value)
        except Exception as exc:  # noqa: BLE001
            raise RpcError(
                f"getTokenAccountsByOwner failed for {wallet_address}: {exc}"
            ) from exc

        tokens: dict[str, int] = {}
        decimals: dict[str, int] = {}
        for keyed in accounts:
            try:
                mint, amount, token_decimals = _parsed_token_amount(keyed)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise RpcError(f"Unparsable token account in response: {exc}") from exc
            if mint == WRAPPED_SOL_MINT:
                continue
            # A wallet can hold several accounts for the same mint.
            tokens[mint] = tokens.get(mint, 0) + amount
            decimals[mint] = token_decimals

        self.logger.debug(
            f"Fetched balances for {wallet_address}: {native_lamports} lamports, "
            f"{len(tokens)} token mint(s)"
        )
        return WalletBalances(
            native_lamports=native_lamports, tokens=tokens, decimals=decimals
        )
