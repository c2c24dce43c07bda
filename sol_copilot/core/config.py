import json
import os
from pathlib import Path
from typing import Any

_CONFIG_ENV_KEYS = ("SOL_COPILOT_CONFIG_PATH", "SOL_COPILOT_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"

_DEFAULT_DEX_BASE_URL = "https://web3.okx.com"
_DEFAULT_ADVISOR_BASE_URL = "https://api.perplexity.ai"
_DEFAULT_RPC_URLS = (
    "https://api.mainnet-beta.solana.com",
    "https://solana-rpc.publicnode.com",
    "https://rpc.ankr.com/solana",
)

_DEX_CREDENTIAL_ENV = {
    "api_key": "OKX_API_KEY",
    "secret_key": "OKX_SECRET_KEY",
    "passphrase": "OKX_API_PASSPHRASE",
    "project_id": "OKX_PROJECT_ID",
}


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except Exception:
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def _section(name: str) -> dict[str, Any]:
    value = CONFIG.get(name)
    return value if isinstance(value, dict) else {}


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def get_rpc_urls() -> list[str]:
    """Ordered RPC preference list; most reliable endpoint first."""
    configured = _section("solana").get("rpc_urls")
    if isinstance(configured, str):
        configured = [configured]
    if isinstance(configured, list):
        urls = [u for u in (_clean(x) for x in configured) if u]
        if urls:
            return urls

    env_value = os.environ.get("SOLANA_RPC_URLS", "")
    urls = [u.strip() for u in env_value.split(",") if u.strip()]
    return urls or list(_DEFAULT_RPC_URLS)


def set_rpc_urls(rpc_urls: list[str]) -> None:
    CONFIG.setdefault("solana", {})
    CONFIG["solana"]["rpc_urls"] = list(rpc_urls)


def get_dex_base_url() -> str:
    return _clean(_section("dex").get("base_url")) or _DEFAULT_DEX_BASE_URL


def get_dex_credentials() -> dict[str, str] | None:
    """Return the four DEX credentials, or None when any one is missing."""
    dex = _section("dex")
    creds: dict[str, str] = {}
    for key, env_key in _DEX_CREDENTIAL_ENV.items():
        value = _clean(dex.get(key)) or _clean(os.environ.get(env_key))
        if not value:
            return None
        creds[key] = value
    return creds


def get_advisor_api_key() -> str | None:
    return _clean(_section("advisor").get("api_key")) or _clean(
        os.environ.get("PPLX_API_KEY")
    )


def get_advisor_base_url() -> str:
    return _clean(_section("advisor").get("base_url")) or _DEFAULT_ADVISOR_BASE_URL


def get_advisor_model() -> str:
    return _clean(_section("advisor").get("model")) or "sonar"


def get_quote_token_address() -> str | None:
    return _clean(_section("dex").get("quote_token_address")) or _clean(
        os.environ.get("QUOTE_TOKEN_ADDRESS")
    )


def get_price_request_delay_s(default: float) -> float:
    raw = _section("dex").get("price_request_delay_s")
    if raw is None:
        raw = os.environ.get("PRICE_REQUEST_DELAY_S")
    if raw is None:
        return default
    try:
        return max(0.0, float(raw))
    except (TypeError, ValueError):
        return default


def get_wallet_private_key() -> str | None:
    return _clean(_section("wallet").get("private_key")) or _clean(
        os.environ.get("SOLANA_PRIVATE_KEY")
    )
