import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from sol_copilot.adapters.balance_adapter.adapter import WalletBalances
from sol_copilot.core.constants.tokens import TOKEN_REGISTRY, USDC, USDC_MINT
from sol_copilot.core.errors import EndpointUnavailable, RpcError
from sol_copilot.core.models import PriceQuote, PriceSource
from sol_copilot.core.portfolio.snapshot import SnapshotBuilder

WALLET_A = "WalletA111111111111111111111111111111111111"
WALLET_B = "WalletB111111111111111111111111111111111111"
EXTRA_MINT = "Zzzz1111111111111111111111111111111111111111"
EXTRA_MINT_2 = "Aaaa1111111111111111111111111111111111111111"


class _Prices:
    def __init__(self, *, network: bool = True, gate: asyncio.Event | None = None):
        self.network = network
        self.gate = gate
        self.calls: list[str] = []

    def requires_network(self, token, quote_token):
        return self.network and token.mint != quote_token.mint

    async def price_of(self, token, quote_token):
        self.calls.append(token.symbol)
        if self.gate is not None:
            await self.gate.wait()
        return PriceQuote(token=token, unit_price=Decimal(2), source=PriceSource.LIVE)


class _Selector:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = 0
        self.handles: list[SimpleNamespace] = []

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        handle = SimpleNamespace(close=AsyncMock())
        self.handles.append(handle)
        return handle


def _balances(**tokens: int) -> WalletBalances:
    return WalletBalances(
        native_lamports=3 * 10**9,
        tokens=dict(tokens),
        decimals={mint: 6 for mint in tokens},
    )


def _builder(balances=None, prices=None, selector=None, sleep=None) -> SnapshotBuilder:
    balance_adapter = MagicMock()
    balance_adapter.fetch_balances = AsyncMock(return_value=balances or _balances())
    return SnapshotBuilder(
        balance_adapter=balance_adapter,
        price_adapter=prices or _Prices(),
        quote_token=USDC,
        endpoint_selector=selector or _Selector(),
        request_delay_s=1.0,
        sleep=sleep or AsyncMock(),
    )


async def _until(predicate):
    while not predicate():
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_snapshot_covers_registry_then_sorted_extras():
    balances = WalletBalances(
        native_lamports=3 * 10**9,
        tokens={USDC_MINT: 5_000_000, EXTRA_MINT: 7, EXTRA_MINT_2: 9, "Empty111": 0},
        decimals={USDC_MINT: 6, EXTRA_MINT: 0, EXTRA_MINT_2: 2, "Empty111": 6},
    )
    builder = _builder(balances=balances)

    snapshot = await builder.build_snapshot(WALLET_A)

    mints = [h.token.mint for h in snapshot.holdings]
    assert mints[: len(TOKEN_REGISTRY)] == [t.mint for t in TOKEN_REGISTRY]
    assert mints[len(TOKEN_REGISTRY) :] == [EXTRA_MINT_2, EXTRA_MINT]
    assert len(mints) == len(set(mints))
    assert snapshot.holdings[0].balance.raw_amount == 3 * 10**9
    assert snapshot.holding_for(USDC_MINT).balance.raw_amount == 5_000_000
    assert snapshot.holding_for(EXTRA_MINT_2).token.symbol == "Aaaa"
    assert snapshot.holding_for(EXTRA_MINT_2).token.decimals == 2
    assert snapshot.degraded is False
    assert builder.latest(WALLET_A) is snapshot


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_pass():
    selector = _Selector()
    prices = _Prices()
    builder = _builder(selector=selector, prices=prices)

    first, second = await asyncio.gather(
        builder.build_snapshot(WALLET_A), builder.build_snapshot(WALLET_A)
    )
    third = await builder.build_snapshot(WALLET_A)

    assert first is second is third
    assert selector.calls == 1
    assert len(prices.calls) == len(TOKEN_REGISTRY)
    builder.balance_adapter.fetch_balances.assert_awaited_once()


@pytest.mark.asyncio
async def test_all_endpoints_failing_yields_zero_snapshot():
    selector = _Selector(EndpointUnavailable(["https://a", "https://b"], "down"))
    builder = _builder(selector=selector)

    snapshot = await builder.build_snapshot(WALLET_A)

    assert snapshot is not None
    assert snapshot.degraded is True
    assert [h.token.mint for h in snapshot.holdings] == [t.mint for t in TOKEN_REGISTRY]
    assert all(h.balance.raw_amount == 0 for h in snapshot.holdings)
    assert snapshot.total_value == 0
    builder.balance_adapter.fetch_balances.assert_not_called()


@pytest.mark.asyncio
async def test_balance_rpc_error_degrades_and_closes_handle():
    selector = _Selector()
    builder = _builder(selector=selector)
    builder.balance_adapter.fetch_balances.side_effect = RpcError("bad response")

    snapshot = await builder.build_snapshot(WALLET_A)

    assert snapshot.degraded is True
    assert all(h.balance.raw_amount == 0 for h in snapshot.holdings)
    selector.handles[0].close.assert_awaited_once()


@pytest.mark.asyncio
async def test_price_requests_are_paced():
    sleep = AsyncMock()
    builder = _builder(sleep=sleep)

    await builder.build_snapshot(WALLET_A)

    # Every registry token but the quote token needs the network.
    network_tokens = len(TOKEN_REGISTRY) - 1
    assert sleep.await_count == network_tokens - 1
    sleep.assert_awaited_with(1.0)


@pytest.mark.asyncio
async def test_no_pacing_without_network():
    sleep = AsyncMock()
    builder = _builder(sleep=sleep, prices=_Prices(network=False))

    await builder.build_snapshot(WALLET_A)

    sleep.assert_not_called()


@pytest.mark.asyncio
async def test_wallet_change_cancels_previous_pass():
    gate = asyncio.Event()
    prices = _Prices(gate=gate)
    builder = _builder(prices=prices)
    published = []
    builder.subscribe(published.append)

    task_a = asyncio.create_task(builder.build_snapshot(WALLET_A))
    await _until(lambda: prices.calls)
    task_b = asyncio.create_task(builder.build_snapshot(WALLET_B))
    await asyncio.sleep(0)
    gate.set()

    result_a, result_b = await asyncio.gather(task_a, task_b)

    assert result_a is None
    assert result_b is not None and result_b.wallet == WALLET_B
    assert builder.latest(WALLET_A) is None
    assert [s.wallet for s in published] == [WALLET_B]


@pytest.mark.asyncio
async def test_detach_cancels_in_flight_pass():
    gate = asyncio.Event()
    prices = _Prices(gate=gate)
    builder = _builder(prices=prices)

    task = asyncio.create_task(builder.build_snapshot(WALLET_A))
    await _until(lambda: prices.calls)
    builder.detach()
    gate.set()

    assert await task is None
    assert builder.latest(WALLET_A) is None
    assert builder.current_wallet is None


@pytest.mark.asyncio
async def test_refresh_forces_new_pass():
    selector = _Selector()
    builder = _builder(selector=selector)

    first = await builder.build_snapshot(WALLET_A)
    second = await builder.refresh(WALLET_A)

    assert second is not first
    assert selector.calls == 2
    assert builder.latest(WALLET_A) is second


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications():
    builder = _builder()
    received = []
    unsubscribe = builder.subscribe(received.append)

    await builder.build_snapshot(WALLET_A)
    unsubscribe()
    await builder.refresh(WALLET_A)

    assert len(received) == 1


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_publication():
    builder = _builder()
    received = []

    def broken(snapshot):
        raise RuntimeError("subscriber bug")

    builder.subscribe(broken)
    builder.subscribe(received.append)

    snapshot = await builder.build_snapshot(WALLET_A)

    assert received == [snapshot]
