from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Dict, Mapping, Optional

import typer

from transaction_machine.config import get_settings
from transaction_machine.errors import TransactionMachineError
from transaction_machine.jobs import dispatch
from transaction_machine.machine import TransactionMachine
from transaction_machine.reporter import print_account, print_error
from transaction_machine.utils.logging import configure_logging

app = typer.Typer(help="Transaction machine account CLI.")

_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise typer.BadParameter(f"{value!r} is not a boolean")


def _query(key: Optional[str], account_id: Optional[int]) -> Dict[str, Any]:
    if key:
        return {"key": key}
    if account_id is not None:
        return {"id": account_id}
    raise typer.BadParameter("either --key or --id is required")


async def _run_job(job_name: str, payload: Mapping[str, Any]) -> Any:
    # The pool opens on first use, so payloads rejected up front never connect.
    machine = TransactionMachine.init(get_settings())
    try:
        return await dispatch(machine, job_name, payload)
    finally:
        await machine.close()


def _execute(job_name: str, payload: Mapping[str, Any], table: bool = False) -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level)
    try:
        result = asyncio.run(_run_job(job_name, payload))
    except TransactionMachineError as exc:
        if table:
            print_error(exc.to_dict())
        else:
            typer.echo(json.dumps(exc.to_dict(), indent=2), err=True)
        raise typer.Exit(code=2)
    if table:
        print_account(result)
    else:
        typer.echo(json.dumps(result, indent=2))


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"pool=({settings.db_pool_min_size},{settings.db_pool_max_size}) "
        f"env={settings.app_env}"
    )


@app.command("create-account")
def create_account(
    key: str = typer.Argument(..., help="External account key."),
    account_type: Optional[str] = typer.Option(None, "--type", "-t", help="Account type."),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Account status."),
    postpaid: bool = typer.Option(False, "--postpaid", "-P", help="Create a postpaid account."),
    table: bool = typer.Option(False, "--table", help="Render the account as a table."),
) -> None:
    """
    Create an account.
    """
    params: Dict[str, Any] = {"key": key}
    if account_type:
        params["type"] = account_type
    if status:
        params["status"] = status
    if postpaid:
        params["postpaid"] = True
    _execute("create_account", params, table)


@app.command("get-account")
def get_account(
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Get account by key."),
    account_id: Optional[int] = typer.Option(None, "--id", help="Get account by id."),
    table: bool = typer.Option(False, "--table", help="Render the account as a table."),
) -> None:
    """
    Print an account as JSON (null if it does not exist).
    """
    _execute("get_account", _query(key, account_id), table)


@app.command("update-account")
def update_account(
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Select account by key."),
    account_id: Optional[int] = typer.Option(None, "--id", help="Select account by id."),
    set_key: Optional[str] = typer.Option(None, "--set-key", help="New account key."),
    set_type: Optional[str] = typer.Option(None, "--set-type", help="New type ('null' clears it)."),
    set_status: Optional[str] = typer.Option(
        None, "--set-status", help="New status: active|suspended|deleted."
    ),
    set_postpaid: Optional[str] = typer.Option(None, "--set-postpaid", help="New postpaid flag."),
    table: bool = typer.Option(False, "--table", help="Render the account as a table."),
) -> None:
    """
    Update selected fields of an account.
    """
    changes: Dict[str, Any] = {}
    if set_key:
        changes["key"] = set_key
    if set_type:
        changes["type"] = None if set_type == "null" else set_type
    if set_status:
        changes["status"] = set_status
    if set_postpaid is not None:
        changes["postpaid"] = _parse_bool(set_postpaid)
    _execute("update_account", {"query": _query(key, account_id), "$set": changes}, table)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
