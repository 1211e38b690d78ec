"""
CLI utility helpers: output formatting and run-config parsing.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.table import Table

from quant_spine.core.errors import InvalidConfigError

console = Console()
err_console = Console(stderr=True)


# ── Config helpers ───────────────────────────────────────────────────────


def parse_overrides(pairs: list[str] | None) -> dict[str, Any]:
    """Turn ``["top_k=20", "instruments=[AAPL, MSFT]"]`` into a dict.

    Values are parsed as YAML scalars/flow collections, so numbers, booleans
    and lists come through typed; anything else stays a string.
    """
    overrides: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise InvalidConfigError(pair, raw, f"Expected KEY=VALUE, got {pair!r}")
        try:
            overrides[key] = yaml.safe_load(raw) if raw.strip() else ""
        except yaml.YAMLError:
            overrides[key] = raw
    return overrides


def load_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML or JSON mapping of run overrides."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise InvalidConfigError(str(path), None, f"Cannot read config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigError(str(path), data, f"Config file {path} must contain a mapping")
    return data


# ── Output helpers ───────────────────────────────────────────────────────


def print_json(payload: Any) -> None:
    """Write JSON to stdout without rich markup or wrapping."""
    typer.echo(json.dumps(payload, indent=2, default=str))


def fail(message: str, code: str = "ERROR") -> None:
    """Print an error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({code}): {message}")
    raise typer.Exit(code=1)


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row.values()))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
