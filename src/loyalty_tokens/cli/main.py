"""
Command line interface for the loyalty token contract.

Every command loads the contract from a JSON state file, runs one
operation, and writes the state back on success.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from loyalty_tokens.core.config import LoyaltyConfig
from loyalty_tokens.core.exceptions import LoyaltyTokenError
from loyalty_tokens.core.logging_config import setup_logging
from loyalty_tokens.core.loyalty_contract import LoyaltyTokenContract

logger = logging.getLogger(__name__)

console = Console()

DEFAULT_STATE_FILE = Path(
    os.getenv("LOYALTY_STATE_FILE", os.path.expanduser("~/.loyalty_tokens/state.json"))
).expanduser()


def _cli_fail(exc: Exception, exit_code: int = 1) -> NoReturn:
    """Centralized CLI error handler for consistent messaging."""
    logger.error("CLI error: %s", exc, exc_info=True)
    kind = getattr(exc, "kind", type(exc).__name__)
    console.print(f"[bold red]Error ({kind}):[/] {escape(str(exc))}", soft_wrap=True)
    sys.exit(exit_code)


def _load(ctx: click.Context) -> LoyaltyTokenContract:
    state_file: Path = ctx.obj["state_file"]
    if not state_file.exists():
        _cli_fail(click.ClickException(f"no contract state at {state_file}; run 'init' first"))
    try:
        return LoyaltyTokenContract.load(state_file)
    except (OSError, ValueError, KeyError, LoyaltyTokenError) as exc:
        _cli_fail(exc)


def _emit(ctx: click.Context, payload: Dict[str, Any], title: str) -> None:
    if ctx.obj["json_output"]:
        click.echo(json.dumps(payload, sort_keys=True))
        return
    table = Table(title=title, box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in payload.items():
        table.add_row(str(key), "-" if value is None else str(value))
    console.print(table)


def _run(ctx: click.Context, operation, title: str) -> None:
    contract = _load(ctx)
    try:
        payload = operation(contract)
    except LoyaltyTokenError as exc:
        _cli_fail(exc)
    contract.save(ctx.obj["state_file"])
    _emit(ctx, payload, title)


@click.group()
@click.option(
    "--state-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=DEFAULT_STATE_FILE,
    show_default=True,
    help="JSON file holding the contract state",
)
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    envvar="LOYALTY_LOG_LEVEL",
    help="Emit JSON logs to stderr at this level",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    envvar="LOYALTY_LOG_FILE",
    help="Also write JSON logs to this rotating file",
)
@click.pass_context
def cli(
    ctx: click.Context,
    state_file: Path,
    json_output: bool,
    log_level: Optional[str],
    log_file: Optional[str],
):
    """Loyalty credential registry with vesting rewards."""
    ctx.ensure_object(dict)
    ctx.obj["state_file"] = state_file
    ctx.obj["json_output"] = json_output
    if log_level or log_file:
        setup_logging(
            name="loyalty_tokens",
            log_file=log_file,
            level=log_level or "INFO",
            environment=os.getenv("LOYALTY_ENVIRONMENT", "production"),
            enable_console=log_level is not None,
        )


@cli.command("init")
@click.option("--admin", envvar="LOYALTY_ADMIN_ADDRESS", help="Administrator address")
@click.option("--transferable/--soulbound", default=None, help="Initial transferability")
@click.option("--name", "collection_name", default=None, help="Collection name")
@click.option("--symbol", "collection_symbol", default=None, help="Collection symbol")
@click.option("--force", is_flag=True, help="Overwrite an existing state file")
@click.pass_context
def init_contract(
    ctx: click.Context,
    admin: Optional[str],
    transferable: Optional[bool],
    collection_name: Optional[str],
    collection_symbol: Optional[str],
    force: bool,
):
    """Create a new contract state file."""
    state_file: Path = ctx.obj["state_file"]
    if state_file.exists() and not force:
        _cli_fail(click.ClickException(f"{state_file} already exists (use --force)"))

    env = dict(os.environ)
    if admin:
        env["LOYALTY_ADMIN_ADDRESS"] = admin
    try:
        config = LoyaltyConfig.from_env(env)
    except LoyaltyTokenError as exc:
        _cli_fail(exc)
    overrides: Dict[str, Any] = {}
    if transferable is not None:
        overrides["transferable"] = transferable
    if collection_name:
        overrides["collection_name"] = collection_name
    if collection_symbol:
        overrides["collection_symbol"] = collection_symbol
    if overrides:
        config = replace(config, **overrides)

    contract = LoyaltyTokenContract(config)
    contract.save(state_file)
    _emit(
        ctx,
        {
            "address": contract.address,
            "administrator": contract.administrator,
            "transferable": contract.get_transferability(),
            "state_file": str(state_file),
        },
        "Contract initialized",
    )


@cli.command("mint")
@click.option("--caller", required=True, help="Calling identity")
@click.argument("target")
@click.pass_context
def mint(ctx: click.Context, caller: str, target: str):
    """Issue a credential to TARGET."""
    _run(
        ctx,
        lambda c: {"token_id": c.mint(caller, target), "owner": target.lower()},
        "Minted",
    )


@cli.command("burn")
@click.option("--caller", required=True, help="Calling identity")
@click.argument("token_id", type=int)
@click.pass_context
def burn(ctx: click.Context, caller: str, token_id: int):
    """Burn credential TOKEN_ID."""

    def operation(contract: LoyaltyTokenContract) -> Dict[str, Any]:
        contract.burn(caller, token_id)
        return {"token_id": token_id, "burnt": contract.is_token_burned(token_id)}

    _run(ctx, operation, "Burned")


@cli.command("approve")
@click.option("--caller", required=True, help="Calling identity")
@click.argument("approved")
@click.argument("token_id", type=int)
@click.pass_context
def approve(ctx: click.Context, caller: str, approved: str, token_id: int):
    """Let APPROVED act on TOKEN_ID."""
    _run(
        ctx,
        lambda c: {"token_id": token_id, "approved": approved.lower(), "ok": c.approve(caller, approved, token_id)},
        "Approved",
    )


@cli.command("transfer")
@click.option("--caller", required=True, help="Calling identity")
@click.argument("from_addr")
@click.argument("to_addr")
@click.argument("token_id", type=int)
@click.pass_context
def transfer(ctx: click.Context, caller: str, from_addr: str, to_addr: str, token_id: int):
    """Transfer TOKEN_ID from FROM_ADDR to TO_ADDR."""

    def operation(contract: LoyaltyTokenContract) -> Dict[str, Any]:
        contract.transfer_from(caller, from_addr, to_addr, token_id)
        return {"token_id": token_id, "owner": contract.owner_of(token_id)}

    _run(ctx, operation, "Transferred")


@cli.command("set-transferability")
@click.option("--caller", required=True, help="Calling identity")
@click.argument("enabled", type=click.BOOL)
@click.pass_context
def set_transferability(ctx: click.Context, caller: str, enabled: bool):
    """Turn transfers on or off for the whole collection (ENABLED: true/false)."""

    def operation(contract: LoyaltyTokenContract) -> Dict[str, Any]:
        contract.set_transferability(caller, enabled)
        return {"transferable": contract.get_transferability()}

    _run(ctx, operation, "Transferability")


@cli.command("schedule")
@click.option("--caller", required=True, help="Calling identity")
@click.argument("token_id", type=int)
@click.argument("duration", type=click.IntRange(min=0))
@click.pass_context
def schedule(ctx: click.Context, caller: str, token_id: int, duration: int):
    """Vest TOKEN_ID DURATION seconds from now."""
    _run(
        ctx,
        lambda c: {"token_id": token_id, "deadline": c.set_vesting_schedule(caller, token_id, duration)},
        "Vesting schedule",
    )


@cli.command("release")
@click.option("--caller", required=True, help="Calling identity")
@click.argument("token_id", type=int)
@click.pass_context
def release(ctx: click.Context, caller: str, token_id: int):
    """Release the vested reward pool for TOKEN_ID to the caller."""

    def operation(contract: LoyaltyTokenContract) -> Dict[str, Any]:
        amount = contract.release_vested(caller, token_id)
        return {"token_id": token_id, "amount": amount, "pool_balance": contract.pool_balance()}

    _run(ctx, operation, "Vested")


@cli.command("fund")
@click.option("--caller", required=True, help="Calling identity")
@click.argument("amount", type=click.IntRange(min=0))
@click.pass_context
def fund(ctx: click.Context, caller: str, amount: int):
    """Mint AMOUNT reward tokens into the contract's custody."""
    _run(ctx, lambda c: {"pool_balance": c.fund_pool(caller, amount)}, "Reward pool")


@cli.command("status")
@click.pass_context
def status(ctx: click.Context):
    """Show contract-wide state."""
    contract = _load(ctx)
    _emit(
        ctx,
        {
            "address": contract.address,
            "administrator": contract.administrator,
            "transferable": contract.get_transferability(),
            "minted": contract.lifecycle.minted_count,
            "next_token_id": contract.lifecycle.next_token_id,
            "pool_balance": contract.pool_balance(),
        },
        "Loyalty contract",
    )


@cli.command("token")
@click.argument("token_id", type=int)
@click.pass_context
def token(ctx: click.Context, token_id: int):
    """Show the state of TOKEN_ID."""
    contract = _load(ctx)
    _emit(ctx, contract.token_info(token_id), f"Token {token_id}")


def main() -> int:
    cli(obj={})
    return 0


if __name__ == "__main__":
    sys.exit(main())
