"""Run command for Polyscript.

Previews a script: the code runs in a sandbox exactly as the engine would run
it, the outcome is printed as JSON, and nothing is persisted.
"""

import asyncio
import copy
import sys
from pathlib import Path
from typing import Any

import click

from polyscript.cli.styles import Messages, console
from polyscript.services.notifications import BROADCAST, RecordingNotifier
from polyscript.services.script_executor import ExecutionCoordinator, ValidationError
from polyscript.utils.config import get_full_configuration
from polyscript.utils.log_filter import quiet_logger


def _load_configurable(config_file: str | None, backend: str | None) -> dict[str, Any]:
    configurable = copy.deepcopy(get_full_configuration(config_file))
    if backend:
        configurable["script_executor"]["backend"] = backend
    return configurable


def _build_coordinator(configurable: dict[str, Any], notifier: RecordingNotifier) -> ExecutionCoordinator:
    return ExecutionCoordinator.from_config(notifier, configurable=configurable)


@click.command()
@click.argument("script_file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--language", "-l", required=True, help="Script language (php, lua, python, javascript)")
@click.option("--code", help="Inline script source (instead of SCRIPT_FILE)")
@click.option("--data", "-d", default="{}", show_default=True, help="Input data as JSON")
@click.option("--script-config", default="{}", show_default=True, help="Script configuration as JSON")
@click.option("--timeout", "-t", type=float, help="Wall-clock timeout in seconds")
@click.option(
    "--backend",
    type=click.Choice(["auto", "docker", "podman", "local"]),
    help="Override script_executor.backend",
)
@click.option(
    "--config-file",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to config.yml (default: ./config.yml or CONFIG_FILE)",
)
@click.option("--user", "-u", default="cli", show_default=True, help="Acting user id")
@click.option("--verbose", "-v", is_flag=True, help="Show engine logs")
def run(
    script_file: str | None,
    language: str,
    code: str | None,
    data: str,
    script_config: str,
    timeout: float | None,
    backend: str | None,
    config_file: str | None,
    user: str,
    verbose: bool,
):
    """Preview a script in a sandbox and print its outcome.

    Exit Codes:
    \b
      0 - Script succeeded
      1 - Script failed (outcome printed)
      2 - Invalid invocation

    Examples:

    \b
      $ polyscript run -l lua --code 'return {response=1}'
      $ polyscript run -l php greet.php --data '{"name": "Taylor"}'
      $ polyscript run -l python job.py --backend local --timeout 5
    """
    if (code is None) == (script_file is None):
        raise click.UsageError("Provide exactly one of SCRIPT_FILE or --code")
    if script_file is not None:
        code = Path(script_file).read_text(encoding="utf-8")

    notifier = RecordingNotifier(channels=[BROADCAST])

    try:
        configurable = _load_configurable(config_file, backend)
        coordinator = _build_coordinator(configurable, notifier)

        async def _preview():
            return await coordinator.preview(
                language,
                code,
                data=data,
                config=script_config,
                acting_user=user,
                timeout_seconds=timeout,
            )

        if verbose:
            outcome = asyncio.run(_preview())
        else:
            with quiet_logger(["CONFIG", "registry", "sandbox", "coordinator", "notifier"]):
                outcome = asyncio.run(_preview())
    except (ValidationError, ValueError) as e:
        console.print(Messages.error(str(e)))
        sys.exit(2)

    console.print_json(data=outcome.to_dict())
    if not outcome.ok:
        console.print(Messages.error(f"{outcome.kind.value}: {outcome.message}"))
        sys.exit(1)
