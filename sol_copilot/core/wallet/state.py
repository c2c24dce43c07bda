from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class WalletState:
    connected: bool = False
    address: str | None = None


@dataclass(frozen=True)
class Connected:
    address: str


@dataclass(frozen=True)
class Disconnected:
    pass


@dataclass(frozen=True)
class AccountChanged:
    # None when the wallet reports no selected account
    address: str | None


WalletEvent = Connected | Disconnected | AccountChanged


def reduce_wallet_state(state: WalletState, event: WalletEvent) -> WalletState:
    if isinstance(event, Connected):
        return WalletState(connected=True, address=event.address)
    if isinstance(event, Disconnected):
        return WalletState()
    if isinstance(event, AccountChanged):
        if event.address is None:
            return WalletState()
        return WalletState(connected=True, address=event.address)
    raise TypeError(f"Unknown wallet event: {event!r}")
