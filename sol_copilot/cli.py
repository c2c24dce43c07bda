from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import asdict
from typing import Any

import click
from loguru import logger

from sol_copilot.adapters.advisor_adapter.adapter import (
    TOKEN_ACTIONS,
    AdvisorAdapter,
    token_action_prompt,
)
from sol_copilot.adapters.price_adapter.adapter import PriceAdapter, resolve_quote_token
from sol_copilot.adapters.swap_adapter.adapter import SwapAdapter
from sol_copilot.core.adapters.models import StrategyAdvice, SwapStrategy
from sol_copilot.core.config import get_wallet_private_key, load_config
from sol_copilot.core.constants.tokens import find_registry_token
from sol_copilot.core.errors import CopilotError
from sol_copilot.core.portfolio.snapshot import SnapshotBuilder
from sol_copilot.core.utils.solana import close_quietly, select_endpoint
from sol_copilot.core.wallet.provider import LocalKeypairWallet, load_keypair


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except CopilotError as exc:
        _echo_json({"ok": False, "error": type(exc).__name__, "details": str(exc)})
        raise SystemExit(1) from exc


@click.group(name="sol-copilot", help="Solana portfolio valuation and swap copilot.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.json (defaults to SOL_COPILOT_CONFIG_PATH or ./config.json).",
)
def main(log_level: str, config_path: str | None) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())
    if config_path:
        load_config(config_path, require_exists=True)


@main.command(name="snapshot", help="Value every holding of WALLET.")
@click.argument("wallet")
def snapshot_cmd(wallet: str) -> None:
    async def _snapshot() -> Any:
        return await SnapshotBuilder().build_snapshot(wallet)

    snapshot = _run(_snapshot())
    if snapshot is None:
        _echo_json({"ok": False, "error": "snapshot_cancelled"})
        raise SystemExit(1)
    _echo_json({"ok": True, "result": snapshot.to_dict()})


@main.command(name="price", help="Price one registry token in the quote asset.")
@click.argument("symbol")
def price_cmd(symbol: str) -> None:
    token = find_registry_token(symbol)
    if token is None:
        _echo_json({"ok": False, "error": "unknown_token", "details": symbol})
        raise SystemExit(1)
    quote = _run(PriceAdapter().price_of(token, resolve_quote_token()))
    _echo_json(
        {
            "ok": True,
            "result": {
                "symbol": token.symbol,
                "mint": token.mint,
                "unit_price": str(quote.unit_price),
                "source": quote.source.value,
            },
        }
    )


@main.command(name="verify-tokens", help="Check every registry address against the DEX.")
def verify_tokens_cmd() -> None:
    results = _run(PriceAdapter().verify_registry())
    valid = sum(1 for r in results if r.valid)
    invalid = sum(1 for r in results if r.valid is False)
    _echo_json(
        {
            "ok": invalid == 0,
            "result": {
                "tokens": [asdict(r) for r in results],
                "valid": valid,
                "invalid": invalid,
                "unknown": len(results) - valid - invalid,
            },
        }
    )


@main.command(name="advise", help="Ask the advisory service about a portfolio.")
@click.argument("prompt", required=False)
@click.option("--wallet", default=None, help="Wallet whose snapshot is sent as context.")
@click.option(
    "--action",
    type=click.Choice(TOKEN_ACTIONS),
    default=None,
    help="Ask a canned question about one holding (needs --token and --wallet).",
)
@click.option("--token", "token_symbol", default=None, help="Holding asked about by --action.")
def advise_cmd(
    prompt: str | None, wallet: str | None, action: str | None, token_symbol: str | None
) -> None:
    if action is None and not prompt:
        _echo_json(
            {"ok": False, "error": "invalid_input", "details": "Give a PROMPT or --action"}
        )
        raise SystemExit(1)
    if action is not None and not (token_symbol and wallet):
        _echo_json(
            {
                "ok": False,
                "error": "invalid_input",
                "details": "--action needs --token and --wallet",
            }
        )
        raise SystemExit(1)

    async def _advise() -> dict[str, Any]:
        snapshot = await SnapshotBuilder().build_snapshot(wallet) if wallet else None
        if wallet and snapshot is None:
            return {"ok": False, "error": "snapshot_cancelled"}

        question = prompt or ""
        if action is not None:
            wanted = token_symbol.strip().upper()
            holding = next(
                (h for h in snapshot.holdings if h.token.symbol.upper() == wanted), None
            )
            if holding is None:
                return {"ok": False, "error": "unknown_token", "details": token_symbol}
            question = token_action_prompt(action, holding)

        advice = await AdvisorAdapter().advise(question, snapshot)
        if isinstance(advice, StrategyAdvice):
            result = {
                "kind": advice.kind.value,
                "strategies": [
                    s.model_dump(mode="json", by_alias=True) for s in advice.strategies
                ],
            }
        else:
            result = {"kind": advice.kind.value, "text": advice.text}
        return {"ok": True, "result": result}

    payload = _run(_advise())
    _echo_json(payload)
    if not payload["ok"]:
        raise SystemExit(1)


@main.command(name="swap", help="Swap between registry tokens with the local keypair.")
@click.option("--from", "from_symbol", required=True)
@click.option("--to", "to_symbol", required=True)
@click.option("--amount", required=True, help='Token amount ("1.5") or share ("50%").')
@click.option(
    "--dry-run", is_flag=True, default=False, help="Only preview the swap quote."
)
def swap_cmd(from_symbol: str, to_symbol: str, amount: str, dry_run: bool) -> None:
    secret = get_wallet_private_key()
    if not secret:
        _echo_json({"ok": False, "error": "missing_private_key"})
        raise SystemExit(1)
    try:
        keypair = load_keypair(secret)
        strategy = SwapStrategy(
            id="cli", from_token=from_symbol, to_token=to_symbol, amount=amount
        )
    except ValueError as exc:
        _echo_json({"ok": False, "error": "invalid_input", "details": str(exc)})
        raise SystemExit(1) from exc

    async def _swap() -> dict[str, Any]:
        address = str(keypair.pubkey())
        snapshot = await SnapshotBuilder().build_snapshot(address)
        if snapshot is None:
            return {"ok": False, "error": "snapshot_cancelled"}

        handle = await select_endpoint()
        try:
            adapter = SwapAdapter(wallet=LocalKeypairWallet(keypair, handle))
            if dry_run:
                ok, preview = await adapter.preview(strategy, snapshot)
                return {"ok": ok, "result" if ok else "error": preview}

            outcome = await adapter.execute(strategy, snapshot)
            if outcome.ok:
                return {"ok": True, "result": {"signature": outcome.signature}}
            return {
                "ok": False,
                "error": outcome.error.reason.value,
                "details": outcome.error.user_message(),
                "history": [s.value for s in outcome.history],
            }
        finally:
            await close_quietly(handle)

    _echo_json(_run(_swap()))


if __name__ == "__main__":
    main()
