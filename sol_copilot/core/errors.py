"""Error taxonomy for the valuation and swap pipeline.

Balance and pricing errors are converted into degraded data where they are
caught; swap errors travel to the caller on ``SwapOutcome.error``.
"""

from __future__ import annotations

from enum import StrEnum


class CopilotError(Exception):
    pass


class EndpointUnavailable(CopilotError):
    def __init__(self, candidates: list[str], last_error: Exception | str | None):
        self.candidates = list(candidates)
        self.last_error = last_error
        super().__init__(
            f"No live RPC endpoint among {len(self.candidates)} candidate(s); "
            f"last error: {last_error}"
        )


class RpcError(CopilotError):
    pass


class MissingCredentials(CopilotError):
    pass


class DexApiError(CopilotError):
    def __init__(self, code: str, message: str, status_code: int | None = None):
        self.code = str(code)
        self.status_code = status_code
        super().__init__(f"DEX API error: {message} (code: {self.code})")


class RateLimited(DexApiError):
    pass


class PriceUnavailable(CopilotError):
    pass


class SwapFailureReason(StrEnum):
    UNKNOWN_TOKEN = "UNKNOWN_TOKEN"
    MISSING_BALANCE = "MISSING_BALANCE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    QUOTE_FAILED = "QUOTE_FAILED"
    DECODE_FAILED = "DECODE_FAILED"
    RPC_ERROR = "RPC_ERROR"
    WALLET_UNAVAILABLE = "WALLET_UNAVAILABLE"
    SUBMISSION_TIMEOUT = "SUBMISSION_TIMEOUT"
    SUBMISSION_REJECTED = "SUBMISSION_REJECTED"


class SwapError(CopilotError):
    reason: SwapFailureReason

    def user_message(self) -> str:
        return f"Swap failed: {self}"


class UnknownToken(SwapError):
    reason = SwapFailureReason.UNKNOWN_TOKEN

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Unsupported token: {symbol}")


class MissingBalance(SwapError):
    reason = SwapFailureReason.MISSING_BALANCE

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"No {symbol} balance in the current portfolio snapshot")


class InvalidAmount(SwapError):
    reason = SwapFailureReason.INVALID_AMOUNT


class QuoteFailed(SwapError):
    reason = SwapFailureReason.QUOTE_FAILED


class PayloadDecodeError(SwapError):
    reason = SwapFailureReason.DECODE_FAILED


class WalletUnavailable(SwapError):
    reason = SwapFailureReason.WALLET_UNAVAILABLE


class SubmissionTimeout(SwapError):
    reason = SwapFailureReason.SUBMISSION_TIMEOUT


class SubmissionRejected(SwapError):
    reason = SwapFailureReason.SUBMISSION_REJECTED


class SwapRpcError(SwapError, RpcError):
    """RPC failure inside the swap pipeline (e.g. blockhash refresh)."""

    reason = SwapFailureReason.RPC_ERROR


class AdvisorError(CopilotError):
    pass
