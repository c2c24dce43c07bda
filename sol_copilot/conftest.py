import pytest

from sol_copilot.core.config import CONFIG, set_config

_ENV_KEYS = (
    "OKX_API_KEY",
    "OKX_SECRET_KEY",
    "OKX_API_PASSPHRASE",
    "OKX_PROJECT_ID",
    "PPLX_API_KEY",
    "QUOTE_TOKEN_ADDRESS",
    "SOLANA_RPC_URLS",
    "PRICE_REQUEST_DELAY_S",
    "SOLANA_PRIVATE_KEY",
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Run every test without a config file or credentials from the environment."""
    saved = dict(CONFIG)
    set_config({})
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    yield CONFIG
    set_config(saved)
