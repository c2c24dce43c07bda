"""Per-wallet portfolio valuation passes.

At most one pass exists per wallet and generation. Asking for a different
wallet, calling ``refresh`` or ``detach`` bumps the generation; an older pass
notices at its next liveness check, returns ``None`` and publishes nothing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger

from sol_copilot.adapters.balance_adapter.adapter import BalanceAdapter, WalletBalances
from sol_copilot.adapters.price_adapter.adapter import PriceAdapter, resolve_quote_token
from sol_copilot.core.config import get_price_request_delay_s
from sol_copilot.core.constants.base import PRICE_REQUEST_DELAY_S
from sol_copilot.core.constants.tokens import NATIVE_SOL_MINT, TOKEN_REGISTRY
from sol_copilot.core.errors import EndpointUnavailable, RpcError
from sol_copilot.core.models import (
    Balance,
    Holding,
    PortfolioSnapshot,
    TokenDescriptor,
)
from sol_copilot.core.utils.solana import close_quietly, select_endpoint

SnapshotCallback = Callable[[PortfolioSnapshot], Any]
EndpointSelector = Callable[[], Awaitable[Any]]


@dataclass
class _Pass:
    wallet: str
    generation: int
    task: asyncio.Task


class SnapshotBuilder:
    def __init__(
        self,
        *,
        balance_adapter: BalanceAdapter | None = None,
        price_adapter: PriceAdapter | None = None,
        registry: Sequence[TokenDescriptor] = TOKEN_REGISTRY,
        quote_token: TokenDescriptor | None = None,
        endpoint_selector: EndpointSelector | None = None,
        request_delay_s: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.balance_adapter = balance_adapter or BalanceAdapter()
        self.price_adapter = price_adapter or PriceAdapter()
        self.registry = tuple(registry)
        self.quote_token = quote_token or resolve_quote_token()
        self._select_endpoint = endpoint_selector or select_endpoint
        self.request_delay_s = (
            request_delay_s
            if request_delay_s is not None
            else get_price_request_delay_s(PRICE_REQUEST_DELAY_S)
        )
        self._sleep = sleep

        self._generation = 0
        self._current_wallet: str | None = None
        self._passes: dict[str, _Pass] = {}
        self._latest: dict[str, PortfolioSnapshot] = {}
        self._subscribers: list[SnapshotCallback] = []

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_wallet(self) -> str | None:
        return self._current_wallet

    def latest(self, wallet: str) -> PortfolioSnapshot | None:
        return self._latest.get(wallet)

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def detach(self) -> None:
        """Invalidate every pass in flight and forget the current wallet."""
        self._generation += 1
        self._current_wallet = None
        self._passes.clear()

    async def refresh(self, wallet: str) -> PortfolioSnapshot | None:
        self._generation += 1
        self._passes.pop(wallet, None)
        return await self.build_snapshot(wallet)

    async def build_snapshot(self, wallet: str) -> PortfolioSnapshot | None:
        existing = self._passes.get(wallet)
        if existing is not None and self._reusable(existing):
            return await asyncio.shield(existing.task)

        if wallet != self._current_wallet:
            self._generation += 1
            self._current_wallet = wallet
            self._passes.clear()

        generation = self._generation
        task = asyncio.create_task(self._run_pass(wallet, generation))
        self._passes[wallet] = _Pass(wallet=wallet, generation=generation, task=task)
        return await asyncio.shield(task)

    def _reusable(self, existing: _Pass) -> bool:
        if existing.generation != self._generation:
            return False
        task = existing.task
        if not task.done():
            return True
        return not task.cancelled() and task.exception() is None

    def _alive(self, generation: int) -> bool:
        return generation == self._generation

    async def _run_pass(self, wallet: str, generation: int) -> PortfolioSnapshot | None:
        if not self._alive(generation):
            return None

        balances, degraded = await self._load_balances(wallet)
        if not self._alive(generation):
            logger.debug(f"Snapshot pass for {wallet} cancelled after balances")
            return None

        holdings: list[Holding] = []
        made_request = False
        for token, raw_amount in self._priced_tokens(balances):
            if not self._alive(generation):
                logger.debug(f"Snapshot pass for {wallet} cancelled while pricing")
                return None
            needs_network = self.price_adapter.requires_network(token, self.quote_token)
            if needs_network and made_request:
                await self._sleep(self.request_delay_s)
                if not self._alive(generation):
                    logger.debug(f"Snapshot pass for {wallet} cancelled while pacing")
                    return None
            price = await self.price_adapter.price_of(token, self.quote_token)
            made_request = made_request or needs_network
            holdings.append(Holding(balance=Balance(token, raw_amount), price=price))

        snapshot = PortfolioSnapshot(
            wallet=wallet, holdings=tuple(holdings), degraded=degraded
        )
        if not self._alive(generation):
            return None

        self._latest[wallet] = snapshot
        logger.info(
            f"Snapshot for {wallet}: {len(holdings)} holding(s), "
            f"total {snapshot.total_value:.2f}{' (degraded)' if degraded else ''}"
        )
        self._publish(snapshot)
        return snapshot

    async def _load_balances(self, wallet: str) -> tuple[WalletBalances, bool]:
        try:
            handle = await self._select_endpoint()
        except EndpointUnavailable as exc:
            logger.warning(f"No RPC endpoint available; zero balances for {wallet}: {exc}")
            return WalletBalances.empty(), True

        try:
            return await self.balance_adapter.fetch_balances(handle, wallet), False
        except RpcError as exc:
            logger.warning(f"Balance fetch failed; zero balances for {wallet}: {exc}")
            return WalletBalances.empty(), True
        finally:
            await close_quietly(handle)

    def _priced_tokens(self, balances: WalletBalances) -> list[tuple[TokenDescriptor, int]]:
        """Every registry token, then nonzero discovered mints sorted by mint."""
        entries: list[tuple[TokenDescriptor, int]] = []
        seen: set[str] = set()
        for token in self.registry:
            if token.mint in seen:
                continue
            seen.add(token.mint)
            if token.mint == NATIVE_SOL_MINT:
                raw = balances.native_lamports
            else:
                raw = balances.tokens.get(token.mint, 0)
            entries.append((token, raw))

        for mint in sorted(balances.tokens):
            raw = balances.tokens[mint]
            if mint in seen or raw <= 0:
                continue
            seen.add(mint)
            token = TokenDescriptor.discovered(mint, balances.decimals.get(mint, 0))
            entries.append((token, raw))
        return entries

    def _publish(self, snapshot: PortfolioSnapshot) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as exc:  # noqa: BLE001
                logger.error(f"Snapshot subscriber failed: {exc}")
