from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from solders.pubkey import Pubkey

from sol_copilot.core.adapters.BaseAdapter import BaseAdapter, status_tuple
from sol_copilot.core.adapters.models import AmountKind, SwapStrategy
from sol_copilot.core.clients.DexClient import DEX_CLIENT, DexClient
from sol_copilot.core.constants.base import (
    ADAPTER_SWAP,
    BLOCKHASH_TIMEOUT_S,
    DEFAULT_SLIPPAGE_BPS,
    SUBMISSION_TIMEOUT_S,
)
from sol_copilot.core.constants.tokens import TOKEN_REGISTRY, registry_by_symbol
from sol_copilot.core.errors import (
    CopilotError,
    InvalidAmount,
    MissingBalance,
    PayloadDecodeError,
    QuoteFailed,
    SubmissionRejected,
    SubmissionTimeout,
    SwapError,
    SwapRpcError,
    UnknownToken,
    WalletUnavailable,
)
from sol_copilot.core.models import (
    PortfolioSnapshot,
    PreparedTransaction,
    SwapOutcome,
    SwapState,
    SwapTransactionRequest,
    TokenDescriptor,
)
from sol_copilot.core.utils.solana import close_quietly, latest_blockhash, select_endpoint
from sol_copilot.core.utils.transaction import (
    decode_transaction,
    with_fresh_blockhash,
)
from sol_copilot.core.utils.units import (
    from_raw_amount,
    percent_of_raw,
    slippage_fraction,
    to_raw_amount,
)
from sol_copilot.core.wallet.provider import WalletProvider


class SwapAdapter(BaseAdapter):
    """Turns an advisory swap strategy into a signed, submitted transaction.

    ``execute`` walks IDLE -> QUOTE_REQUESTED -> PAYLOAD_DECODED ->
    BLOCKHASH_REFRESHED -> AWAITING_SIGNATURE -> CONFIRMED, or ends in FAILED
    carrying the typed ``SwapError``. Nothing is retried.
    """

    adapter_type = ADAPTER_SWAP

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        dex_client: DexClient | None = None,
        wallet: WalletProvider | None = None,
        endpoint_selector: Callable[[], Awaitable[Any]] | None = None,
        registry: Sequence[TokenDescriptor] = TOKEN_REGISTRY,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        blockhash_timeout_s: float = BLOCKHASH_TIMEOUT_S,
        submission_timeout_s: float = SUBMISSION_TIMEOUT_S,
    ):
        super().__init__("swap_adapter", config)
        self.dex_client = dex_client or DEX_CLIENT
        self.wallet = wallet
        self._select_endpoint = endpoint_selector or select_endpoint
        self.tokens = registry_by_symbol(tuple(registry))
        self.slippage_bps = int(self.config.get("slippage_bps", slippage_bps))
        self.blockhash_timeout_s = blockhash_timeout_s
        self.submission_timeout_s = submission_timeout_s

    def resolve_token(self, symbol: str) -> TokenDescriptor:
        token = self.tokens.get(str(symbol or "").strip().upper())
        if token is None:
            raise UnknownToken(symbol)
        return token

    def wallet_address_for(self, snapshot: PortfolioSnapshot) -> str:
        """The connected wallet's address, which must own the snapshot."""
        if self.wallet is None:
            return snapshot.wallet
        address = str(self.wallet.address)
        if address != snapshot.wallet:
            raise WalletUnavailable(
                f"Connected wallet {address} does not own the snapshot of {snapshot.wallet}"
            )
        return address

    def resolve_request(
        self, strategy: SwapStrategy, snapshot: PortfolioSnapshot
    ) -> SwapTransactionRequest:
        from_token = self.resolve_token(strategy.from_token)
        to_token = self.resolve_token(strategy.to_token)
        wallet_address = self.wallet_address_for(snapshot)

        try:
            if strategy.amount.kind == AmountKind.PERCENT:
                holding = snapshot.holding_for(from_token.mint)
                balance_raw = holding.balance.raw_amount if holding is not None else 0
                if balance_raw <= 0:
                    raise MissingBalance(from_token.symbol)
                raw_amount = percent_of_raw(balance_raw, strategy.amount.value)
            else:
                raw_amount = to_raw_amount(strategy.amount.value, from_token.decimals)
        except ValueError as exc:
            raise InvalidAmount(f"{strategy.amount} {from_token.symbol}: {exc}") from exc

        if raw_amount <= 0:
            raise InvalidAmount(
                f"{strategy.amount} {from_token.symbol} rounds to zero base units"
            )
        return SwapTransactionRequest(
            from_token=from_token,
            to_token=to_token,
            raw_amount=raw_amount,
            slippage_bps=self.slippage_bps,
            wallet_address=wallet_address,
        )

    async def request_swap(self, request: SwapTransactionRequest) -> dict[str, Any]:
        try:
            swap_data = await self.dex_client.swap(
                from_token_address=request.from_token.mint,
                to_token_address=request.to_token.mint,
                amount=request.raw_amount,
                slippage=slippage_fraction(request.slippage_bps),
                user_wallet_address=request.wallet_address,
            )
        except CopilotError as exc:
            raise QuoteFailed(f"Swap quote failed: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise QuoteFailed(f"Swap quote request failed: {exc}") from exc
        if not isinstance(swap_data, dict):
            raise QuoteFailed(f"Unexpected swap response: {swap_data!r}")
        return swap_data

    def decode_payload(self, data: str | bytes | None) -> PreparedTransaction:
        prepared = decode_transaction(data)
        self.logger.debug(
            f"Decoded {prepared.format} transaction ({len(prepared.encoded_payload)} bytes)"
        )
        return prepared

    async def refresh_blockhash(
        self, prepared: PreparedTransaction, handle: Any, wallet_address: str
    ) -> PreparedTransaction:
        try:
            fee_payer = Pubkey.from_string(wallet_address)
        except ValueError as exc:
            raise SwapRpcError(f"Invalid wallet address {wallet_address!r}") from exc

        try:
            blockhash = await asyncio.wait_for(
                latest_blockhash(handle), self.blockhash_timeout_s
            )
        except TimeoutError as exc:
            raise SwapRpcError(
                f"Timed out after {self.blockhash_timeout_s:.0f}s fetching a blockhash"
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise SwapRpcError(f"Could not fetch a recent blockhash: {exc}") from exc

        try:
            return with_fresh_blockhash(prepared, blockhash, fee_payer)
        except Exception as exc:  # noqa: BLE001
            raise PayloadDecodeError(f"Could not rebuild the transaction: {exc}") from exc

    async def _refresh_with_endpoint(
        self, prepared: PreparedTransaction, wallet_address: str
    ) -> PreparedTransaction:
        try:
            handle = await self._select_endpoint()
        except CopilotError as exc:
            raise SwapRpcError(str(exc)) from exc
        try:
            return await self.refresh_blockhash(prepared, handle, wallet_address)
        finally:
            await close_quietly(handle)

    async def submit(self, prepared: PreparedTransaction) -> str:
        if self.wallet is None:
            raise WalletUnavailable("No wallet connected; swaps are unavailable")
        try:
            signature = await asyncio.wait_for(
                self.wallet.sign_and_send_transaction(prepared.transaction),
                self.submission_timeout_s,
            )
        except TimeoutError as exc:
            raise SubmissionTimeout(
                f"Wallet did not confirm within {self.submission_timeout_s:.0f}s"
            ) from exc
        except SwapError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise SubmissionRejected(f"Wallet rejected the transaction: {exc}") from exc
        return str(signature)

    async def execute(
        self, strategy: SwapStrategy, snapshot: PortfolioSnapshot
    ) -> SwapOutcome:
        history = [SwapState.IDLE]
        try:
            if self.wallet is None:
                raise WalletUnavailable("No wallet connected; swaps are unavailable")
            request = self.resolve_request(strategy, snapshot)

            history.append(SwapState.QUOTE_REQUESTED)
            self.logger.info(
                f"Requesting swap {request.raw_amount} {request.from_token.symbol} -> "
                f"{request.to_token.symbol}"
            )
            swap_data = await self.request_swap(request)
            tx = swap_data.get("tx")
            prepared = self.decode_payload(tx.get("data") if isinstance(tx, dict) else tx)

            history.append(SwapState.PAYLOAD_DECODED)
            prepared = await self._refresh_with_endpoint(prepared, request.wallet_address)

            history.append(SwapState.BLOCKHASH_REFRESHED)
            history.append(SwapState.AWAITING_SIGNATURE)
            signature = await self.submit(prepared)
        except SwapError as exc:
            history.append(SwapState.FAILED)
            self.logger.error(f"Swap {strategy.id} failed at {history[-2]}: {exc}")
            return SwapOutcome(state=SwapState.FAILED, history=tuple(history), error=exc)

        history.append(SwapState.CONFIRMED)
        self.logger.info(f"Swap {strategy.id} confirmed: {signature}")
        return SwapOutcome(
            state=SwapState.CONFIRMED, history=tuple(history), signature=signature
        )

    @status_tuple
    async def preview(
        self, strategy: SwapStrategy, snapshot: PortfolioSnapshot
    ) -> dict[str, Any]:
        """Estimated output and price impact for a strategy, without signing."""
        request = self.resolve_request(strategy, snapshot)
        swap_data = await self.request_swap(request)
        router = swap_data.get("routerResult")
        if not isinstance(router, dict):
            router = {}
        to_raw = router.get("toTokenAmount")
        return {
            "from_token": request.from_token.symbol,
            "to_token": request.to_token.symbol,
            "from_amount": str(
                from_raw_amount(request.raw_amount, request.from_token.decimals)
            ),
            "estimated_to_amount": (
                str(from_raw_amount(to_raw, request.to_token.decimals))
                if to_raw is not None
                else None
            ),
            "price_impact": swap_data.get("priceImpactPercentage")
            or router.get("priceImpactPercentage"),
            "slippage": slippage_fraction(request.slippage_bps),
        }
