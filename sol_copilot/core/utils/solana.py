import asyncio
import time
from collections.abc import Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.hash import Hash

from sol_copilot.core.config import get_rpc_urls
from sol_copilot.core.constants.base import ENDPOINT_PROBE_TIMEOUT
from sol_copilot.core.errors import EndpointUnavailable

ClientFactory = Callable[[str], Any]


def _default_client_factory(url: str) -> AsyncClient:
    return AsyncClient(url, commitment=Confirmed, timeout=ENDPOINT_PROBE_TIMEOUT)


async def close_quietly(client: Any) -> None:
    try:
        await client.close()
    except Exception as exc:  # noqa: BLE001
        logger.debug(f"Ignoring error while closing RPC client: {exc}")


async def select_endpoint(
    candidates: Sequence[str] | None = None,
    *,
    probe_timeout: float = ENDPOINT_PROBE_TIMEOUT,
    client_factory: ClientFactory | None = None,
) -> Any:
    """Return a client for the first candidate that answers a liveness probe.

    Candidates are tried once each, in order. The probe is a single
    ``getLatestBlockhash`` call bounded by ``probe_timeout``.
    """
    urls = list(candidates) if candidates is not None else get_rpc_urls()
    factory = client_factory or _default_client_factory
    last_error: Exception | str | None = "no candidates configured"

    for url in urls:
        start_time = time.time()
        client = factory(url)
        try:
            await asyncio.wait_for(client.get_latest_blockhash(), probe_timeout)
        except Exception as exc:  # noqa: BLE001
            elapsed = time.time() - start_time
            logger.warning(
                f"RPC endpoint {url} failed liveness probe after {elapsed:.2f}s: {exc!r}"
            )
            last_error = exc
            await close_quietly(client)
            continue

        elapsed = time.time() - start_time
        logger.debug(f"Using RPC endpoint {url} ({elapsed:.2f}s probe)")
        return client

    raise EndpointUnavailable(urls, last_error)


@asynccontextmanager
async def connected_endpoint(
    candidates: Sequence[str] | None = None,
    *,
    probe_timeout: float = ENDPOINT_PROBE_TIMEOUT,
    client_factory: ClientFactory | None = None,
):
    client = await select_endpoint(
        candidates, probe_timeout=probe_timeout, client_factory=client_factory
    )
    try:
        yield client
    finally:
        await close_quietly(client)


async def latest_blockhash(client: Any) -> Hash:
    resp = await client.get_latest_blockhash()
    return resp.value.blockhash
