# OKX DEX identifies Solana mainnet by chain index 501.
SOLANA_CHAIN_INDEX = "501"

LAMPORTS_PER_SOL = 1_000_000_000
SOL_DECIMALS = 9

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"

DEFAULT_SLIPPAGE_BPS = 50

# Body status codes returned by the DEX API
DEX_CODE_OK = "0"
DEX_CODE_RATE_LIMITED = "50011"
DEX_CODE_SIGN_ERROR = "50113"
DEX_CODE_AUTH_REQUIRED = "50116"
DEX_CODE_INSUFFICIENT_LIQUIDITY = "82000"
RATE_LIMIT_HTTP_STATUS = 429

# Timeout constants (seconds)
DEFAULT_HTTP_TIMEOUT = 10.0
ADVISOR_HTTP_TIMEOUT = 30.0
ENDPOINT_PROBE_TIMEOUT = 5.0
BLOCKHASH_TIMEOUT_S = 15.0
SUBMISSION_TIMEOUT_S = 120.0

# Pacing between sequential price requests within one snapshot pass
PRICE_REQUEST_DELAY_S = 1.0

VERIFY_REQUEST_DELAY_S = 3.0
VERIFY_MAX_RETRIES = 2
VERIFY_RETRY_DELAY_S = 5.0

ADAPTER_BALANCE = "BALANCE"
ADAPTER_PRICE = "PRICE"
ADAPTER_SWAP = "SWAP"
ADAPTER_ADVISOR = "ADVISOR"
