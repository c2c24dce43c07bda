from __future__ import annotations

import json
from pathlib import Path

import pytest

import sol_copilot.core.config as config

REPO_ROOT = Path(__file__).resolve().parents[2]


def test_resolve_config_path_defaults_to_repo_root(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("SOL_COPILOT_CONFIG_PATH", raising=False)
    monkeypatch.delenv("SOL_COPILOT_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)

    assert config.resolve_config_path() == REPO_ROOT / "config.json"


def test_resolve_config_path_env_relative_is_repo_relative(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("SOL_COPILOT_CONFIG_PATH", "config.example.json")
    monkeypatch.chdir(tmp_path)

    assert config.resolve_config_path() == REPO_ROOT / "config.example.json"


def test_example_config_has_expected_sections(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("SOL_COPILOT_CONFIG_PATH", "config.example.json")
    monkeypatch.chdir(tmp_path)

    cfg = config.load_config_json()
    assert isinstance(cfg["solana"]["rpc_urls"], list)
    assert set(cfg["dex"]) >= {"api_key", "secret_key", "passphrase", "project_id"}
    assert "api_key" in cfg["advisor"]


def test_load_config_requires_file_when_asked(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        config.load_config(tmp_path / "missing.json", require_exists=True)


def test_load_config_replaces_global_in_place(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"solana": {"rpc_urls": ["https://one", "https://two"]}}))
    config_ref = config.CONFIG

    config.load_config(path)

    assert config.CONFIG is config_ref
    assert config.get_rpc_urls() == ["https://one", "https://two"]


def test_rpc_urls_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOLANA_RPC_URLS", "https://a, https://b ,")
    assert config.get_rpc_urls() == ["https://a", "https://b"]


def test_rpc_urls_default_list() -> None:
    urls = config.get_rpc_urls()
    assert urls[0] == "https://api.mainnet-beta.solana.com"
    assert len(urls) > 1


def test_dex_credentials_need_all_four(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OKX_API_KEY", "k")
    monkeypatch.setenv("OKX_SECRET_KEY", "s")
    monkeypatch.setenv("OKX_API_PASSPHRASE", "p")
    assert config.get_dex_credentials() is None

    monkeypatch.setenv("OKX_PROJECT_ID", "pr")
    assert config.get_dex_credentials() == {
        "api_key": "k",
        "secret_key": "s",
        "passphrase": "p",
        "project_id": "pr",
    }


def test_config_file_wins_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PPLX_API_KEY", "from-env")
    config.set_config({"advisor": {"api_key": "from-file"}})

    assert config.get_advisor_api_key() == "from-file"


def test_price_request_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    assert config.get_price_request_delay_s(1.0) == 1.0
    monkeypatch.setenv("PRICE_REQUEST_DELAY_S", "0.25")
    assert config.get_price_request_delay_s(1.0) == 0.25
    monkeypatch.setenv("PRICE_REQUEST_DELAY_S", "soon")
    assert config.get_price_request_delay_s(1.0) == 1.0
