"""
Root Typer application for the quant-spine CLI.

``quantspine templates list|show`` inspects the template registry and
``quantspine run NAME`` executes one workflow run through the subprocess
script service, streaming progress to the terminal.
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from quant_spine.cli.templates import app as templates_app
from quant_spine.cli.utils import (
    console,
    fail,
    load_config_file,
    parse_overrides,
    print_json,
    print_table,
)
from quant_spine.core.errors import InvalidConfigError, QuantSpineError
from quant_spine.core.logging import configure_logging
from quant_spine.core.settings import QuantSpineSettings, get_settings
from quant_spine.execution.script_service import (
    ScriptExecutionService,
    SubprocessScriptService,
)
from quant_spine.orchestration.engine import WorkflowEngine
from quant_spine.orchestration.exceptions import TemplateNotFoundError
from quant_spine.orchestration.step_result import WorkflowResult
from quant_spine.orchestration.templates import get_template

app = Typer(
    name="quantspine",
    help="quant-spine: workflow orchestration for quantitative research.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from quant_spine import __version__

        try:
            v = pkg_version("quant-spine")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"quant-spine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """quant-spine CLI: list templates and run research workflows."""
    settings = get_settings()
    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        json_format=settings.log_json,
    )


app.add_typer(templates_app, name="templates", help="Workflow template registry.")


# ── run ──────────────────────────────────────────────────────────────────


def build_service(settings: QuantSpineSettings) -> ScriptExecutionService:
    """Script service used by ``run``."""
    return SubprocessScriptService.from_settings(settings)


def _print_progress(step_name: str, percent: int, message: str) -> None:
    console.print(f"[cyan]{percent:>3}%[/cyan] [bold]{step_name}[/bold] {message}")


def _print_summary(result: WorkflowResult) -> None:
    print_table(
        [
            {
                "step": s.name,
                "type": s.type,
                "status": "ok" if s.success else f"failed ({s.error_category.value})",
                "duration": f"{s.duration:.2f}s",
            }
            for s in result.steps
        ],
        title=f"Run {result.run_id}",
    )
    for path in result.output_files:
        console.print(f"  [dim]artifact[/dim] {path}")
    if result.success:
        console.print(f"[bold green]Completed[/bold green] in {result.duration:.2f}s")
    elif result.cancelled:
        console.print("[bold yellow]Cancelled[/bold yellow]")


@app.command("run")
def run_command(
    name: str = typer.Argument(..., help="Template name"),
    overrides: list[str] | None = typer.Option(
        None, "--set", "-s", help="Config override KEY=VALUE (repeatable)"
    ),
    config_file: Path | None = typer.Option(
        None, "--config", "-c", help="YAML/JSON file of config overrides", dir_okay=False
    ),
    json_out: bool = typer.Option(False, "--json", help="Emit the run result as JSON"),
) -> None:
    """Execute a workflow template once."""
    settings = get_settings()

    try:
        template = get_template(name)
    except TemplateNotFoundError as e:
        fail(e.message, code="NOT_FOUND")

    try:
        run_config = load_config_file(config_file) if config_file else {}
        run_config.update(parse_overrides(overrides))
    except InvalidConfigError as e:
        fail(e.message, code="CONFIG")

    engine = WorkflowEngine(build_service(settings), settings)
    try:
        result = engine.execute(
            template,
            run_config,
            progress=None if json_out else _print_progress,
        )
    except QuantSpineError as e:
        fail(e.message, code=e.category.value)

    if json_out:
        print_json(result.to_dict())
    else:
        _print_summary(result)

    if not result.success:
        if result.error:
            fail(result.error, code="RUN_FAILED")
        raise typer.Exit(code=1)
