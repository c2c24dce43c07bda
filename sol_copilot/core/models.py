"""Value types shared by the valuation and swap pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any


@dataclass(frozen=True)
class TokenDescriptor:
    symbol: str
    mint: str
    decimals: int

    def __post_init__(self) -> None:
        if self.decimals < 0:
            raise ValueError(f"decimals must be >= 0, got {self.decimals}")

    @classmethod
    def discovered(cls, mint: str, decimals: int) -> TokenDescriptor:
        """Descriptor for an on-chain mint that is not in the registry."""
        return cls(symbol=mint[:4], mint=mint, decimals=decimals)


@dataclass(frozen=True)
class Balance:
    token: TokenDescriptor
    raw_amount: int

    @property
    def ui_amount(self) -> Decimal:
        return Decimal(self.raw_amount) / (Decimal(10) ** self.token.decimals)


class PriceSource(StrEnum):
    LIVE = "LIVE"
    FALLBACK = "FALLBACK"


@dataclass(frozen=True)
class PriceQuote:
    token: TokenDescriptor
    unit_price: Decimal
    source: PriceSource


@dataclass(frozen=True)
class Holding:
    balance: Balance
    price: PriceQuote

    @property
    def token(self) -> TokenDescriptor:
        return self.balance.token

    @property
    def value(self) -> Decimal:
        return self.balance.ui_amount * self.price.unit_price


@dataclass(frozen=True)
class PortfolioSnapshot:
    wallet: str
    holdings: tuple[Holding, ...]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    degraded: bool = False

    @property
    def total_value(self) -> Decimal:
        return sum((h.value for h in self.holdings), Decimal(0))

    def holding_for(self, mint: str) -> Holding | None:
        for holding in self.holdings:
            if holding.token.mint == mint:
                return holding
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet": self.wallet,
            "timestamp": self.timestamp.isoformat(),
            "degraded": self.degraded,
            "total_value": str(self.total_value),
            "holdings": [
                {
                    "symbol": h.token.symbol,
                    "mint": h.token.mint,
                    "amount": str(h.balance.ui_amount),
                    "price": str(h.price.unit_price),
                    "price_source": h.price.source.value,
                    "value": str(h.value),
                }
                for h in self.holdings
            ],
        }


class TransactionFormat(StrEnum):
    LEGACY = "LEGACY"
    VERSIONED = "VERSIONED"


@dataclass(frozen=True)
class SwapTransactionRequest:
    from_token: TokenDescriptor
    to_token: TokenDescriptor
    raw_amount: int
    slippage_bps: int
    wallet_address: str


@dataclass(frozen=True)
class PreparedTransaction:
    encoded_payload: bytes
    format: TransactionFormat
    # solders VersionedTransaction or Transaction, matching ``format``
    transaction: Any


class SwapState(StrEnum):
    IDLE = "IDLE"
    QUOTE_REQUESTED = "QUOTE_REQUESTED"
    PAYLOAD_DECODED = "PAYLOAD_DECODED"
    BLOCKHASH_REFRESHED = "BLOCKHASH_REFRESHED"
    AWAITING_SIGNATURE = "AWAITING_SIGNATURE"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SwapOutcome:
    state: SwapState
    history: tuple[SwapState, ...]
    signature: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.state == SwapState.CONFIRMED

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error
