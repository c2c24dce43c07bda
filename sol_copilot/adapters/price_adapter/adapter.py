from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from sol_copilot.core.adapters.BaseAdapter import BaseAdapter
from sol_copilot.core.clients.DexClient import DEX_CLIENT, DexClient
from sol_copilot.core.config import get_quote_token_address
from sol_copilot.core.constants.base import (
    ADAPTER_PRICE,
    DEX_CODE_AUTH_REQUIRED,
    DEX_CODE_INSUFFICIENT_LIQUIDITY,
    DEX_CODE_OK,
    DEX_CODE_SIGN_ERROR,
    VERIFY_MAX_RETRIES,
    VERIFY_REQUEST_DELAY_S,
    VERIFY_RETRY_DELAY_S,
)
from sol_copilot.core.constants.tokens import (
    DEFAULT_QUOTE_TOKEN,
    DEFAULT_TEST_AMOUNT,
    FALLBACK_PRICES,
    TEST_AMOUNTS,
    TOKEN_REGISTRY,
    find_registry_token,
)
from sol_copilot.core.errors import (
    DexApiError,
    MissingCredentials,
    PriceUnavailable,
    RateLimited,
)
from sol_copilot.core.models import PriceQuote, PriceSource, TokenDescriptor
from sol_copilot.core.utils.units import from_raw_amount, to_raw_amount


def resolve_quote_token() -> TokenDescriptor:
    """The configured quote asset, defaulting to USDC."""
    address = get_quote_token_address()
    if not address:
        return DEFAULT_QUOTE_TOKEN
    known = find_registry_token(address)
    if known is not None:
        return known
    # Unregistered quote assets are assumed to be 6-decimal stables.
    return TokenDescriptor(symbol="QUOTE", mint=address, decimals=6)


class VerificationStatus(StrEnum):
    VALID = "VALID"
    VALID_AUTH_REQUIRED = "VALID_AUTH_REQUIRED"
    VALID_SIGN_ERROR = "VALID_SIGN_ERROR"
    INVALID_LIQUIDITY = "INVALID_LIQUIDITY"
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    NOT_CHECKED = "NOT_CHECKED"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class TokenVerification:
    symbol: str
    mint: str
    status: VerificationStatus
    reason: str
    valid: bool | None
    code: str | None = None


_CODE_STATUS: dict[str, tuple[VerificationStatus, bool, str]] = {
    DEX_CODE_OK: (VerificationStatus.VALID, True, "Quote succeeded"),
    DEX_CODE_AUTH_REQUIRED: (
        VerificationStatus.VALID_AUTH_REQUIRED,
        True,
        "Token recognised; request needs authentication",
    ),
    DEX_CODE_SIGN_ERROR: (
        VerificationStatus.VALID_SIGN_ERROR,
        True,
        "Token recognised; request signature rejected",
    ),
    DEX_CODE_INSUFFICIENT_LIQUIDITY: (
        VerificationStatus.INVALID_LIQUIDITY,
        False,
        "Insufficient liquidity, likely a wrong or outdated address",
    ),
}


class PriceAdapter(BaseAdapter):
    """Unit prices in the quote asset, degrading to a static table on failure."""

    adapter_type = ADAPTER_PRICE

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        dex_client: DexClient | None = None,
        fallback_prices: dict[str, Decimal] | None = None,
        test_amounts: dict[str, Decimal] | None = None,
    ):
        super().__init__("price_adapter", config)
        self.dex_client = dex_client or DEX_CLIENT
        self.fallback_prices = (
            fallback_prices if fallback_prices is not None else FALLBACK_PRICES
        )
        self.test_amounts = test_amounts if test_amounts is not None else TEST_AMOUNTS

    def requires_network(self, token: TokenDescriptor, quote_token: TokenDescriptor) -> bool:
        return token.mint != quote_token.mint and self.dex_client.has_credentials()

    def fallback_quote(self, token: TokenDescriptor) -> PriceQuote:
        price = self.fallback_prices.get(token.mint, Decimal(0))
        return PriceQuote(token=token, unit_price=price, source=PriceSource.FALLBACK)

    def test_amount_raw(self, token: TokenDescriptor) -> int:
        amount = self.test_amounts.get(token.mint, DEFAULT_TEST_AMOUNT)
        return max(1, to_raw_amount(amount, token.decimals))

    async def price_of(
        self, token: TokenDescriptor, quote_token: TokenDescriptor | None = None
    ) -> PriceQuote:
        quote_token = quote_token or resolve_quote_token()
        if token.mint == quote_token.mint:
            return PriceQuote(token=token, unit_price=Decimal(1), source=PriceSource.LIVE)

        if not self.dex_client.has_credentials():
            self.logger.debug(f"No DEX credentials; fallback price for {token.symbol}")
            return self.fallback_quote(token)

        try:
            unit_price = await self._live_unit_price(token, quote_token)
        except RateLimited as exc:
            self.logger.warning(
                f"Rate limited pricing {token.symbol}; using fallback price ({exc})"
            )
            return self.fallback_quote(token)
        except PriceUnavailable as exc:
            self.logger.warning(f"Price unavailable for {token.symbol}: {exc}")
            return self.fallback_quote(token)

        return PriceQuote(token=token, unit_price=unit_price, source=PriceSource.LIVE)

    async def _live_unit_price(
        self, token: TokenDescriptor, quote_token: TokenDescriptor
    ) -> Decimal:
        sent_raw = self.test_amount_raw(token)
        try:
            quote = await self.dex_client.quote(
                from_token_address=token.mint,
                to_token_address=quote_token.mint,
                amount=sent_raw,
            )
        except RateLimited:
            raise
        except Exception as exc:  # noqa: BLE001
            raise PriceUnavailable(f"quote request failed: {exc}") from exc
        return self._unit_price_from_quote(quote, token, quote_token, sent_raw)

    @staticmethod
    def _unit_price_from_quote(
        quote: dict[str, Any],
        token: TokenDescriptor,
        quote_token: TokenDescriptor,
        sent_raw: int,
    ) -> Decimal:
        if not isinstance(quote, dict):
            raise PriceUnavailable(f"unexpected quote response: {quote!r}")
        try:
            to_raw = int(quote["toTokenAmount"])
            from_raw = int(quote.get("fromTokenAmount") or sent_raw)
            to_token = quote.get("toToken") or {}
            if not isinstance(to_token, dict):
                raise TypeError(f"toToken is {type(to_token).__name__}, not an object")
            quote_decimals = int(to_token.get("decimal", quote_token.decimals))
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            raise PriceUnavailable(f"malformed quote response: {exc}") from exc
        if from_raw <= 0 or to_raw < 0:
            raise PriceUnavailable(
                f"non-positive quote amounts: from={from_raw} to={to_raw}"
            )
        received = from_raw_amount(to_raw, quote_decimals)
        sent = from_raw_amount(from_raw, token.decimals)
        return received / sent

    async def verify_token(
        self,
        token: TokenDescriptor,
        quote_token: TokenDescriptor,
        *,
        max_retries: int = VERIFY_MAX_RETRIES,
        retry_delay_s: float = VERIFY_RETRY_DELAY_S,
    ) -> TokenVerification:
        """Probe one registry address with a test quote and classify the answer."""
        if token.mint == quote_token.mint:
            return TokenVerification(
                token.symbol,
                token.mint,
                VerificationStatus.SKIPPED,
                "Cannot quote token against itself",
                True,
            )
        if not self.dex_client.has_credentials():
            return TokenVerification(
                token.symbol,
                token.mint,
                VerificationStatus.NOT_CHECKED,
                "DEX credentials not configured",
                None,
            )

        attempt = 0
        while True:
            try:
                await self.dex_client.quote(
                    from_token_address=token.mint,
                    to_token_address=quote_token.mint,
                    amount=self.test_amount_raw(token),
                )
                status, valid, reason = _CODE_STATUS[DEX_CODE_OK]
                return TokenVerification(
                    token.symbol, token.mint, status, reason, valid, DEX_CODE_OK
                )
            except RateLimited:
                if attempt >= max_retries:
                    return TokenVerification(
                        token.symbol,
                        token.mint,
                        VerificationStatus.RATE_LIMITED,
                        "Too many requests; could not verify",
                        None,
                    )
                attempt += 1
                self.logger.info(
                    f"Rate limited verifying {token.symbol}; retry {attempt}/{max_retries} "
                    f"in {retry_delay_s:.0f}s"
                )
                await asyncio.sleep(retry_delay_s)
            except DexApiError as exc:
                status, valid, reason = _CODE_STATUS.get(
                    exc.code, (VerificationStatus.ERROR, False, f"API error: {exc}")
                )
                return TokenVerification(
                    token.symbol, token.mint, status, reason, valid, exc.code
                )
            except MissingCredentials as exc:
                return TokenVerification(
                    token.symbol, token.mint, VerificationStatus.NOT_CHECKED, str(exc), None
                )
            except Exception as exc:  # noqa: BLE001
                return TokenVerification(
                    token.symbol,
                    token.mint,
                    VerificationStatus.NETWORK_ERROR,
                    str(exc),
                    False,
                )

    async def verify_registry(
        self,
        tokens: Iterable[TokenDescriptor] = TOKEN_REGISTRY,
        quote_token: TokenDescriptor | None = None,
        *,
        delay_s: float = VERIFY_REQUEST_DELAY_S,
        max_retries: int = VERIFY_MAX_RETRIES,
        retry_delay_s: float = VERIFY_RETRY_DELAY_S,
    ) -> list[TokenVerification]:
        quote_token = quote_token or resolve_quote_token()
        results: list[TokenVerification] = []
        made_request = False
        for token in tokens:
            needs_network = self.requires_network(token, quote_token)
            if needs_network and made_request:
                await asyncio.sleep(delay_s)
            made_request = made_request or needs_network
            result = await self.verify_token(
                token,
                quote_token,
                max_retries=max_retries,
                retry_delay_s=retry_delay_s,
            )
            self.logger.info(f"{token.symbol}: {result.status} - {result.reason}")
            results.append(result)
        return results
