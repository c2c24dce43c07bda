import json
import time
from typing import Any

import httpx
from loguru import logger

from sol_copilot.core.config import (
    get_advisor_api_key,
    get_advisor_base_url,
    get_advisor_model,
)
from sol_copilot.core.constants.base import ADVISOR_HTTP_TIMEOUT
from sol_copilot.core.errors import AdvisorError, MissingCredentials

STRATEGY_KEYWORDS = ("strategy", "trade", "swap", "opportunities")
STRATEGY_MAX_TOKENS = 300
ANALYSIS_MAX_TOKENS = 200

STRATEGY_SYSTEM_PROMPT = """You are a DeFi portfolio advisor. For trading strategy requests, respond ONLY with a valid JSON object in this exact format:
{
  "strategies": [
    {
      "title": "Strategy title",
      "description": "Why this strategy makes sense",
      "fromToken": "TOKEN_SYMBOL",
      "toToken": "TOKEN_SYMBOL",
      "amount": "percentage or amount",
      "estimatedToAmount": "estimated amount",
      "actionId": "unique-id"
    }
  ]
}
Provide 1-3 realistic trading strategies based on current market conditions. Use token symbols from the user's portfolio."""

ANALYSIS_SYSTEM_PROMPT = (
    "You are a DeFi portfolio advisor. For analysis and price prediction requests, "
    "provide detailed text responses with specific insights about market conditions, "
    "price analysis, and recommendations."
)


def is_strategy_request(prompt: str) -> bool:
    text = prompt.lower()
    return any(keyword in text for keyword in STRATEGY_KEYWORDS)


class AdvisorClient:
    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
    ):
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(ADVISOR_HTTP_TIMEOUT)
        )
        self._api_key = api_key
        self._base_url = base_url
        self._model = model

    def api_key(self) -> str | None:
        return self._api_key or get_advisor_api_key()

    @property
    def url(self) -> str:
        return f"{(self._base_url or get_advisor_base_url()).rstrip('/')}/chat/completions"

    def build_body(self, prompt: str, portfolio: Any) -> dict[str, Any]:
        structured = is_strategy_request(prompt)
        return {
            "model": self._model or get_advisor_model(),
            "messages": [
                {
                    "role": "system",
                    "content": STRATEGY_SYSTEM_PROMPT
                    if structured
                    else ANALYSIS_SYSTEM_PROMPT,
                },
                {
                    "role": "user",
                    "content": f"Portfolio: {json.dumps(portfolio)}. Question: {prompt}",
                },
            ],
            "max_tokens": STRATEGY_MAX_TOKENS if structured else ANALYSIS_MAX_TOKENS,
        }

    async def complete(self, prompt: str, portfolio: Any) -> str:
        """Send one chat completion and return the assistant message text."""
        api_key = self.api_key()
        if not api_key:
            raise MissingCredentials("Missing advisor API key (PPLX_API_KEY)")

        url = self.url
        logger.debug(f"Making POST request to {url}")
        start_time = time.time()
        try:
            resp = await self.client.post(
                url,
                json=self.build_body(prompt, portfolio),
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            raise AdvisorError(f"Advisor request failed: {exc}") from exc

        elapsed = time.time() - start_time
        if resp.status_code >= 400:
            logger.warning(
                f"HTTP {resp.status_code} response for POST {url} after {elapsed:.2f}s"
            )
            raise AdvisorError(f"Advisor returned HTTP {resp.status_code}")
        logger.debug(f"HTTP {resp.status_code} response for POST {url} after {elapsed:.2f}s")

        try:
            return str(resp.json()["choices"][0]["message"]["content"])
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AdvisorError(f"Unexpected advisor response: {exc}") from exc

    async def close(self) -> None:
        await self.client.aclose()


ADVISOR_CLIENT = AdvisorClient()
