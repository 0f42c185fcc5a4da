"""Languages command for Polyscript: lists registered language adapters."""

import json

import click
from rich.table import Table

from polyscript.cli.styles import Styles, console
from polyscript.services.script_executor import ScriptExecutorConfig, build_default_registry
from polyscript.services.script_executor.execution.runtime_helper import find_interpreter
from polyscript.utils.config import get_full_configuration
from polyscript.utils.log_filter import quiet_logger


@click.command()
@click.option(
    "--config-file",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to config.yml (default: ./config.yml or CONFIG_FILE)",
)
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table")
def languages(config_file: str | None, as_json: bool):
    """List supported script languages with their images and interpreters.

    The "Local" column shows whether the interpreter is on PATH, which the
    local process backend needs.
    """
    with quiet_logger(["CONFIG", "registry"]):
        config = ScriptExecutorConfig(get_full_configuration(config_file))
        registry = build_default_registry(config)

    rows = []
    for adapter in registry.adapters():
        info = adapter.describe()
        info["local_interpreter"] = find_interpreter(adapter.interpreter)
        rows.append(info)

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return

    table = Table(title="Supported languages", border_style=Styles.BORDER_DIM)
    table.add_column("Language", style=Styles.PRIMARY)
    table.add_column("Aliases")
    table.add_column("Image", style=Styles.PATH)
    table.add_column("Interpreter")
    table.add_column("Local")

    for row in rows:
        table.add_row(
            row["language"],
            ", ".join(row["aliases"]) or "-",
            row["image"],
            row["interpreter"],
            "[success]✓[/success]" if row["local_interpreter"] else "[dim]-[/dim]",
        )

    console.print(table)
