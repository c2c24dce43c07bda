from __future__ import annotations

import base64
import hashlib
import hmac
import time
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlencode

import httpx
from loguru import logger

from sol_copilot.core.config import get_dex_base_url, get_dex_credentials
from sol_copilot.core.constants.base import (
    DEFAULT_HTTP_TIMEOUT,
    DEX_CODE_OK,
    DEX_CODE_RATE_LIMITED,
    RATE_LIMIT_HTTP_STATUS,
    SOLANA_CHAIN_INDEX,
)
from sol_copilot.core.errors import DexApiError, MissingCredentials, RateLimited

QUOTE_PATH = "/api/v5/dex/aggregator/quote"
SWAP_PATH = "/api/v5/dex/aggregator/swap"
CREDENTIAL_KEYS = ("api_key", "secret_key", "passphrase", "project_id")


def _iso_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sign_request(
    secret_key: str,
    timestamp: str,
    method: str,
    request_path: str,
    query_or_body: str = "",
) -> str:
    """Base64 HMAC-SHA256 of ``timestamp + method + path + query_or_body``."""
    prehash = f"{timestamp}{method.upper()}{request_path}{query_or_body}"
    digest = hmac.new(
        secret_key.encode("utf-8"), prehash.encode("utf-8"), hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("utf-8")


class DexClient:
    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        credentials: dict[str, str] | None = None,
        chain_index: str = SOLANA_CHAIN_INDEX,
    ):
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(DEFAULT_HTTP_TIMEOUT)
        )
        self._base_url = base_url
        self._credentials = credentials
        self.chain_index = chain_index

    @property
    def base_url(self) -> str:
        return (self._base_url or get_dex_base_url()).rstrip("/")

    def credentials(self) -> dict[str, str] | None:
        if self._credentials is not None:
            creds = {
                k: str(self._credentials.get(k) or "").strip() for k in CREDENTIAL_KEYS
            }
            return creds if all(creds.values()) else None
        return get_dex_credentials()

    def has_credentials(self) -> bool:
        return self.credentials() is not None

    def _auth_headers(
        self, method: str, request_path: str, query_or_body: str
    ) -> dict[str, str]:
        creds = self.credentials()
        if creds is None:
            raise MissingCredentials("Missing DEX API credentials")
        timestamp = _iso_timestamp()
        return {
            "Content-Type": "application/json",
            "OK-ACCESS-KEY": creds["api_key"],
            "OK-ACCESS-SIGN": sign_request(
                creds["secret_key"], timestamp, method, request_path, query_or_body
            ),
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": creds["passphrase"],
            "OK-ACCESS-PROJECT": creds["project_id"],
        }

    async def _signed_request(
        self,
        method: str,
        request_path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        method = method.upper()
        query = f"?{urlencode(params)}" if params else ""
        headers = self._auth_headers(method, request_path, query)
        url = f"{self.base_url}{request_path}{query}"

        logger.debug(f"Making {method} request to {request_path}")
        start_time = time.time()
        resp = await self.client.request(method, url, headers=headers)
        elapsed = time.time() - start_time
        summary = f"HTTP {resp.status_code} response for {method} {request_path}"
        if resp.status_code >= 400:
            logger.warning(f"{summary} after {elapsed:.2f}s")
        else:
            logger.debug(f"{summary} after {elapsed:.2f}s")

        if resp.status_code == RATE_LIMIT_HTTP_STATUS:
            raise RateLimited(
                DEX_CODE_RATE_LIMITED, "Too many requests", resp.status_code
            )

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and "code" in payload:
            code = str(payload.get("code"))
            if code == DEX_CODE_RATE_LIMITED:
                raise RateLimited(code, str(payload.get("msg") or ""), resp.status_code)
            if code != DEX_CODE_OK:
                raise DexApiError(code, str(payload.get("msg") or ""), resp.status_code)

        resp.raise_for_status()
        if not isinstance(payload, dict):
            raise DexApiError("invalid_response", "Response body is not a JSON object")

        data = payload.get("data")
        if not isinstance(data, list) or not data:
            raise DexApiError("empty_response", "Response contained no data")
        return data

    async def quote(
        self, *, from_token_address: str, to_token_address: str, amount: int | str
    ) -> dict[str, Any]:
        params = {
            "chainIndex": self.chain_index,
            "chainId": self.chain_index,
            "fromTokenAddress": from_token_address,
            "toTokenAddress": to_token_address,
            "amount": str(amount),
        }
        data = await self._signed_request("GET", QUOTE_PATH, params=params)
        return data[0]

    async def swap(
        self,
        *,
        from_token_address: str,
        to_token_address: str,
        amount: int | str,
        slippage: str,
        user_wallet_address: str,
    ) -> dict[str, Any]:
        params = {
            "chainIndex": self.chain_index,
            "chainId": self.chain_index,
            "fromTokenAddress": from_token_address,
            "toTokenAddress": to_token_address,
            "amount": str(amount),
            "slippage": slippage,
            "userWalletAddress": user_wallet_address,
        }
        data = await self._signed_request("GET", SWAP_PATH, params=params)
        return data[0]

    async def close(self) -> None:
        await self.client.aclose()


DEX_CLIENT = DexClient()
