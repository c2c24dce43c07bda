from decimal import Decimal

from sol_copilot.core.models import TokenDescriptor

# OKX DEX addresses native SOL with the system program id.
NATIVE_SOL_MINT = "11111111111111111111111111111111"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

SOL = TokenDescriptor(symbol="SOL", mint=NATIVE_SOL_MINT, decimals=9)
USDT = TokenDescriptor(
    symbol="USDT", mint="Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", decimals=6
)
USDC = TokenDescriptor(symbol="USDC", mint=USDC_MINT, decimals=6)
WBTC = TokenDescriptor(
    symbol="wBTC", mint="9n4nbM75f5Ui33ZbPYXn59EwSgE8CGsHtAeTH5YFeJ9E", decimals=6
)
WETH = TokenDescriptor(
    symbol="wETH", mint="7vfCXTUXx8kP4HT8YhJPgJ7Y4w6vjbQfgFQQs1nCJ3Kn", decimals=8
)
WBNB = TokenDescriptor(
    symbol="wBNB", mint="9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM", decimals=8
)
JITOSOL = TokenDescriptor(
    symbol="JitoSOL", mint="J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn", decimals=9
)

# Registry order is the display and pricing order of every snapshot.
TOKEN_REGISTRY: tuple[TokenDescriptor, ...] = (SOL, USDT, USDC, WBTC, WETH, WBNB, JITOSOL)

DEFAULT_QUOTE_TOKEN = USDC

# Static reference prices in USDC, used whenever a live quote is unavailable.
FALLBACK_PRICES: dict[str, Decimal] = {
    SOL.mint: Decimal("150"),
    USDT.mint: Decimal("1"),
    USDC.mint: Decimal("1"),
    WBTC.mint: Decimal("60000"),
    WETH.mint: Decimal("3000"),
    WBNB.mint: Decimal("550"),
    JITOSOL.mint: Decimal("170"),
}

# Notional sent with each price quote, in whole tokens.
TEST_AMOUNTS: dict[str, Decimal] = {
    SOL.mint: Decimal("0.1"),
    USDT.mint: Decimal("10"),
    USDC.mint: Decimal("10"),
    WBTC.mint: Decimal("0.0001"),
    WETH.mint: Decimal("0.001"),
    WBNB.mint: Decimal("0.01"),
    JITOSOL.mint: Decimal("0.1"),
}
DEFAULT_TEST_AMOUNT = Decimal("0.01")


def registry_by_symbol(
    registry: tuple[TokenDescriptor, ...] = TOKEN_REGISTRY,
) -> dict[str, TokenDescriptor]:
    return {t.symbol.upper(): t for t in registry}


def find_registry_token(
    query: str, registry: tuple[TokenDescriptor, ...] = TOKEN_REGISTRY
) -> TokenDescriptor | None:
    """Look a token up by symbol (case-insensitive) or by exact mint."""
    q = str(query or "").strip()
    if not q:
        return None
    for token in registry:
        if token.mint == q:
            return token
    return registry_by_symbol(registry).get(q.upper())
