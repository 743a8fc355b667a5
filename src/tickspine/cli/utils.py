"""
CLI utility helpers: output formatting and settings loading.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from tickspine.core.errors import QueueUnavailableError
from tickspine.core.settings import TickSpineSettings
from tickspine.queue.registry import QueueRegistry
from tickspine.runtime import build_queues

console = Console()
err_console = Console(stderr=True)


def load_settings(database: str | None = None) -> TickSpineSettings:
    """Settings from the environment, with an optional ``--db`` override."""
    settings = TickSpineSettings()
    if database:
        settings = settings.model_copy(update={"database_path": database})
    return settings


def open_queues(settings: TickSpineSettings) -> QueueRegistry:
    try:
        return build_queues(settings)
    except QueueUnavailableError as e:
        err_console.print(f"[bold red]Error[/bold red]: {e.message}")
        raise typer.Exit(code=1) from e


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_items(items: list[Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a list of rows as JSON or a Rich table."""
    rows = [_to_dict(item) for item in items]
    if as_json:
        console.print_json(json.dumps(rows, default=str))
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*[_fmt(row.get(col)) for col in rows[0]])
    console.print(table)


_STATUS_STYLE = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}


def styled_status(status: str) -> str:
    style = _STATUS_STYLE.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _fmt(value: Any) -> str:
    if value is None:
        return "[dim]-[/dim]"
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    if isinstance(value, str) and value in _STATUS_STYLE:
        return styled_status(value)
    return str(value)
