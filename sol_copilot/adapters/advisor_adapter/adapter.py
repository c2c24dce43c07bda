from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from sol_copilot.core.adapters.BaseAdapter import BaseAdapter
from sol_copilot.core.adapters.models import (
    Advice,
    StrategyAdvice,
    SwapStrategy,
    TextAdvice,
)
from sol_copilot.core.clients.AdvisorClient import (
    ADVISOR_CLIENT,
    AdvisorClient,
    is_strategy_request,
)
from sol_copilot.core.constants.base import ADAPTER_ADVISOR
from sol_copilot.core.errors import MissingCredentials
from sol_copilot.core.models import Holding, PortfolioSnapshot

ADVISOR_UNAVAILABLE_TEXT = (
    "The advisory service is unavailable: no API key is configured."
)

TOKEN_ACTIONS = ("analyze", "trade", "strategy", "price")


def token_action_prompt(action: str, holding: Holding) -> str:
    """Canned question about one holding, as offered next to each portfolio row."""
    symbol = holding.token.symbol
    amount = holding.balance.ui_amount
    price = holding.price.unit_price
    if action == "analyze":
        worth = (amount * price).quantize(Decimal("0.01"))
        return (
            f"Analyze my {symbol} position. I currently hold {amount} {symbol} "
            f"worth ${worth}. What's your analysis?"
        )
    if action == "trade":
        return (
            f"I want to trade my {symbol}. I have {amount} {symbol}. "
            "What are the best trading opportunities right now?"
        )
    if action == "strategy":
        return (
            f"Create a trading strategy for {symbol}. "
            f"My current position is {amount} {symbol} at ${price} each."
        )
    if action == "price":
        return f"What's the price prediction for {symbol}? Current price is ${price}."
    raise ValueError(f"Unknown token action: {action} (expected one of {TOKEN_ACTIONS})")


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def parse_advice(content: str, *, structured: bool) -> Advice:
    """Strategy JSON becomes ``StrategyAdvice``; anything else stays text."""
    if not structured:
        return TextAdvice(content)
    try:
        payload = json.loads(_strip_code_fence(content))
    except ValueError:
        return TextAdvice(content)
    if not isinstance(payload, dict) or not isinstance(payload.get("strategies"), list):
        return TextAdvice(content)
    try:
        strategies = tuple(SwapStrategy.model_validate(s) for s in payload["strategies"])
    except ValidationError:
        return TextAdvice(content)
    if not strategies:
        return TextAdvice(content)
    return StrategyAdvice(strategies)


def portfolio_payload(snapshot: PortfolioSnapshot | None) -> list[dict[str, Any]]:
    if snapshot is None:
        return []
    return [
        {
            "symbol": h["symbol"],
            "amount": h["amount"],
            "price": h["price"],
            "value": h["value"],
        }
        for h in snapshot.to_dict()["holdings"]
    ]


class AdvisorAdapter(BaseAdapter):
    adapter_type = ADAPTER_ADVISOR

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        advisor_client: AdvisorClient | None = None,
    ):
        super().__init__("advisor_adapter", config)
        self.advisor_client = advisor_client or ADVISOR_CLIENT

    async def advise(
        self, prompt: str, snapshot: PortfolioSnapshot | None = None
    ) -> Advice:
        structured = is_strategy_request(prompt)
        try:
            content = await self.advisor_client.complete(
                prompt, portfolio_payload(snapshot)
            )
        except MissingCredentials:
            self.logger.warning("Advisor API key not configured")
            return TextAdvice(ADVISOR_UNAVAILABLE_TEXT)

        advice = parse_advice(content, structured=structured)
        if structured and isinstance(advice, TextAdvice):
            self.logger.warning("Strategy response was not valid strategy JSON; returning text")
        return advice
