from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation


def _to_decimal(value: str | int | float | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    return Decimal(str(value).strip())


def to_raw_amount(amount_tokens: str | int | float | Decimal, decimals: int) -> int:
    """Whole-token amount to smallest units, truncated toward zero."""
    try:
        amt = _to_decimal(amount_tokens)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid token amount: {amount_tokens}") from exc
    if not amt.is_finite():
        raise ValueError(f"Invalid token amount: {amount_tokens}")
    if amt < 0:
        raise ValueError("Amount must be non-negative")
    scale = Decimal(10) ** int(decimals)
    return int((amt * scale).to_integral_value(rounding=ROUND_DOWN))


def from_raw_amount(raw_amount: int | str, decimals: int) -> Decimal:
    return Decimal(int(raw_amount)) / (Decimal(10) ** int(decimals))


def percent_of_raw(raw_amount: int, percent: str | int | float | Decimal) -> int:
    try:
        pct = _to_decimal(percent)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid percentage: {percent}") from exc
    if not pct.is_finite() or pct < 0 or pct > 100:
        raise ValueError(f"Percentage must be between 0 and 100, got {percent}")
    share = Decimal(int(raw_amount)) * pct / Decimal(100)
    return int(share.to_integral_value(rounding=ROUND_DOWN))


def slippage_fraction(slippage_bps: int) -> str:
    """Basis points to the decimal fraction string the DEX API expects."""
    fraction = max(Decimal(0), Decimal(int(slippage_bps)) / Decimal(10_000))
    return format(fraction.normalize(), "f")
