from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)


class AmountKind(StrEnum):
    ABSOLUTE = "ABSOLUTE"
    PERCENT = "PERCENT"


class AmountSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: AmountKind
    value: Decimal

    @classmethod
    def parse(cls, raw: Any) -> AmountSpec:
        """Parse ``"50%"`` as a percentage and ``"1.5"`` as an absolute quantity."""
        if isinstance(raw, AmountSpec):
            return raw
        text = str(raw if raw is not None else "").strip().replace(",", "")
        kind = AmountKind.ABSOLUTE
        if text.endswith("%"):
            kind = AmountKind.PERCENT
            text = text[:-1].strip()
        try:
            value = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {raw!r}") from exc
        try:
            return cls(kind=kind, value=value)
        except ValidationError as exc:
            raise ValueError(f"Invalid amount {raw!r}: {exc.errors()[0]['msg']}") from exc

    @model_validator(mode="after")
    def _check_range(self) -> AmountSpec:
        if not self.value.is_finite() or self.value <= 0:
            raise ValueError(f"Amount must be positive: {self.value}")
        if self.kind == AmountKind.PERCENT and self.value > 100:
            raise ValueError(f"Percentage above 100: {self.value}")
        return self

    def __str__(self) -> str:
        return f"{self.value}%" if self.kind == AmountKind.PERCENT else str(self.value)


class SwapStrategy(BaseModel):
    """One swap suggestion from the advisory service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="actionId", min_length=1)
    from_token: str = Field(alias="fromToken", min_length=1)
    to_token: str = Field(alias="toToken", min_length=1)
    amount: AmountSpec
    estimated_to_amount: str | None = Field(default=None, alias="estimatedToAmount")
    title: str = ""
    description: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> AmountSpec:
        return AmountSpec.parse(value)

    @field_validator("estimated_to_amount", mode="before")
    @classmethod
    def _stringify_estimate(cls, value: Any) -> str | None:
        return None if value is None else str(value)


class AdviceKind(StrEnum):
    TEXT = "text"
    STRATEGIES = "strategies"


@dataclass(frozen=True)
class TextAdvice:
    text: str
    kind: AdviceKind = AdviceKind.TEXT


@dataclass(frozen=True)
class StrategyAdvice:
    strategies: tuple[SwapStrategy, ...]
    kind: AdviceKind = AdviceKind.STRATEGIES


Advice = TextAdvice | StrategyAdvice
