from __future__ import annotations

from typing import Any, Dict, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from transaction_machine.domain.models import SCHEMA_FIELDS

# Column order of the table view: identity first, then schema fields, then timestamps.
_LEADING_FIELDS = ("id",) + SCHEMA_FIELDS + ("created_at", "updated_at")


def _format_value(value: Any) -> str:
    if value is None:
        return "[dim]null[/dim]"
    if isinstance(value, bool):
        return "yes" if value else "no"
    return escape(str(value))


def print_account(account: Optional[Dict[str, Any]], console: Optional[Console] = None) -> None:
    """
    Render a plain account object (as returned by the job handlers) as a rich table.

    Schema fields come first in column order; extra attributes follow, dimmed.
    """
    console = console or Console()

    if account is None:
        console.print("[yellow]No account found.[/yellow]")
        return

    title = f"{account.get('type') or 'Account'} #{account.get('id')}"
    table = Table(title=title, box=box.ROUNDED, show_header=True)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    for name in _LEADING_FIELDS:
        if name in account:
            table.add_row(name, _format_value(account[name]))
    for name, value in account.items():
        if name not in _LEADING_FIELDS:
            table.add_row(f"[dim]{name}[/dim]", _format_value(value))

    console.print(table)


def print_error(error: Dict[str, Any], console: Optional[Console] = None) -> None:
    """Render a serialized `TransactionMachineError` on stderr."""
    console = console or Console(stderr=True)
    reason = escape(str(error.get("message", "")))
    message = f"[bold red]{error.get('error', 'Error')}[/bold red]: {reason}"
    if error.get("code"):
        message += f" [dim](code {error['code']})[/dim]"
    console.print(message)
    for name, reason in (error.get("fields") or {}).items():
        console.print(f"  [cyan]{escape(str(name))}[/cyan]: {escape(str(reason))}")
