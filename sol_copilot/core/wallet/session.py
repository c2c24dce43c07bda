from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from sol_copilot.core.portfolio.snapshot import SnapshotBuilder
from sol_copilot.core.wallet.provider import WalletProvider
from sol_copilot.core.wallet.state import (
    AccountChanged,
    Connected,
    Disconnected,
    WalletEvent,
    WalletState,
    reduce_wallet_state,
)


class WalletSession:
    """Feeds wallet provider events through the reducer into a SnapshotBuilder."""

    def __init__(self, provider: WalletProvider, builder: SnapshotBuilder):
        self.provider = provider
        self.builder = builder
        self.state = WalletState()
        self._pending: set[asyncio.Task] = set()
        self._attached = False

    def attach(self) -> None:
        if self._attached:
            return
        self.provider.on("connect", self._on_connect)
        self.provider.on("disconnect", self._on_disconnect)
        self.provider.on("accountChanged", self._on_account_changed)
        self._attached = True

    def close(self) -> None:
        if not self._attached:
            return
        self.provider.off("connect", self._on_connect)
        self.provider.off("disconnect", self._on_disconnect)
        self.provider.off("accountChanged", self._on_account_changed)
        self._attached = False
        self.builder.detach()

    def _on_connect(self, address: Any = None) -> None:
        if address is None:
            return
        self.dispatch(Connected(str(address)))

    def _on_disconnect(self, *_: Any) -> None:
        self.dispatch(Disconnected())

    def _on_account_changed(self, address: Any = None) -> None:
        self.dispatch(AccountChanged(None if address is None else str(address)))

    def dispatch(self, event: WalletEvent) -> WalletState:
        previous = self.state
        self.state = reduce_wallet_state(previous, event)
        logger.debug(f"Wallet state {previous} -> {self.state} on {event}")

        if not self.state.connected or self.state.address is None:
            self.builder.detach()
        elif self.state.address != previous.address or not previous.connected:
            self._schedule_snapshot(self.state.address)
        return self.state

    def _schedule_snapshot(self, address: str) -> None:
        task = asyncio.get_running_loop().create_task(self.builder.build_snapshot(address))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_idle(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
