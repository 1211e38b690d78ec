"""
CLI: ``quantspine templates``: inspect registered workflow templates.
"""

from __future__ import annotations

import typer

from quant_spine.cli.utils import console, fail, print_dict, print_json, print_table
from quant_spine.orchestration.exceptions import TemplateNotFoundError
from quant_spine.orchestration.templates import get_template, list_templates

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_command(
    json_out: bool = typer.Option(False, "--json", help="Emit JSON"),
) -> None:
    """List registered templates."""
    templates = [get_template(name) for name in list_templates()]
    rows = [
        {
            "name": t.name,
            "category": t.category,
            "steps": len(t.steps),
            "description": t.description,
        }
        for t in templates
    ]
    if json_out:
        print_json(rows)
        return
    print_table(rows, title="Workflow templates")


@app.command("show")
def show_command(
    name: str = typer.Argument(..., help="Template name"),
    json_out: bool = typer.Option(False, "--json", help="Emit JSON"),
) -> None:
    """Show a template's config and steps."""
    try:
        template = get_template(name)
    except TemplateNotFoundError as e:
        fail(e.message, code="NOT_FOUND")

    if json_out:
        print_json(template.to_dict())
        return

    print_dict(
        {
            "category": template.category,
            "description": template.description,
            **{f"config.{k}": v for k, v in template.base_config.items()},
        },
        title=f"Template: {template.name}",
    )
    console.print()
    print_table(
        [
            {
                "#": i,
                "name": step.name,
                "type": step.type_value,
                "required": step.required,
                "depends on": ", ".join(step.dependencies) or "-",
                "description": step.description,
            }
            for i, step in enumerate(template.execution_order(), start=1)
        ],
        title="Steps",
    )
