"""Health check command for Polyscript.

This module provides the 'polyscript health' command which diagnoses whether
this host can execute scripts: configuration validity, the scripts home
directory, the sandbox backend (container runtime or local interpreters) and
the notification storage. No script is executed.
"""

import os
import sys
from pathlib import Path
from typing import Any

import click
import yaml
from rich.panel import Panel

from polyscript.cli.styles import Messages, Styles, console
from polyscript.services.script_executor import ScriptExecutorConfig, build_default_registry
from polyscript.services.script_executor.execution.runtime_helper import (
    find_interpreter,
    verify_runtime_is_running,
)
from polyscript.utils.config import ConfigBuilder
from polyscript.utils.log_filter import quiet_logger


class HealthCheckResult:
    """Result of a health check with status and details."""

    def __init__(self, name: str, status: str, message: str = "", details: str = ""):
        self.name = name
        self.status = status  # "ok", "warning", "error"
        self.message = message
        self.details = details

    def __repr__(self):
        return f"HealthCheckResult({self.name}, {self.status})"


class HealthChecker:
    """Host diagnostics for the script execution engine."""

    def __init__(self, verbose: bool = False, config_path: Path | None = None):
        self.verbose = verbose
        self.config_path = config_path
        self.results: list[HealthCheckResult] = []
        self.configurable: dict[str, Any] = {}
        self.executor_config: ScriptExecutorConfig | None = None

    def add_result(self, name: str, status: str, message: str = "", details: str = ""):
        """Add a health check result."""
        self.results.append(HealthCheckResult(name, status, message, details))

    def _print(self, status: str, message: str) -> None:
        formatter = {"ok": Messages.success, "warning": Messages.warning}.get(status, Messages.error)
        console.print(f"  {formatter(message)}")

    def check_all(self) -> bool:
        """Run all health checks and return True if none reported an error."""
        console.print(f"\n{Messages.header('Polyscript - Health Check')}\n")

        with quiet_logger(["CONFIG", "registry", "sandbox"]):
            self.check_configuration()
            if self.executor_config is not None:
                self.check_scripts_home()
                self.check_backend()
            self.check_notifications()

        self.display_results()
        return not any(r.status == "error" for r in self.results)

    def check_configuration(self):
        """Check the configuration file and the executor settings derived from it."""
        console.print("[bold]Configuration[/bold]")

        path = self.config_path or Path(os.environ.get("CONFIG_FILE") or Path.cwd() / "config.yml")
        if path.exists():
            try:
                builder = ConfigBuilder(path)
            except (yaml.YAMLError, ValueError) as e:
                self.add_result("config_file", "error", "Invalid configuration file", str(e))
                self._print("error", f"{path} is invalid")
                return
            self.add_result("config_file", "ok", f"Found at {path}")
            self._print("ok", f"{path.name} found")
        else:
            builder = ConfigBuilder.from_dict({})
            self.add_result(
                "config_file", "warning", "No config.yml found, using defaults", f"Looked for: {path}"
            )
            self._print("warning", "config.yml not found (defaults apply)")

        self.configurable = builder.configurable
        try:
            self.executor_config = ScriptExecutorConfig(self.configurable)
            limits = self.executor_config.limits
        except ValueError as e:
            self.add_result("executor_settings", "error", "Invalid script_executor settings", str(e))
            self._print("error", f"Invalid script_executor settings: {e}")
            return

        self.add_result("executor_settings", "ok", f"backend={self.executor_config.backend}")
        self._print(
            "ok",
            f"Executor: backend={self.executor_config.backend}, "
            f"timeout={self.executor_config.timeout_seconds:g}s, "
            f"workers={self.executor_config.max_concurrent_sandboxes}, "
            f"memory={limits.memory}, cpus={limits.cpus:g}",
        )

    def check_scripts_home(self):
        """Check that the scripts home directory exists and is writable."""
        console.print("\n[bold]File System[/bold]")
        scripts_home = self.executor_config.scripts_home

        if not scripts_home.is_dir():
            self.add_result(
                "scripts_home",
                "error",
                f"Scripts home does not exist: {scripts_home}",
                f"Create it with: mkdir -p {scripts_home}",
            )
            self._print("error", f"Scripts home missing: {scripts_home}")
        elif not os.access(scripts_home, os.W_OK):
            self.add_result("scripts_home", "error", f"Scripts home is not writable: {scripts_home}")
            self._print("error", f"Scripts home not writable: {scripts_home}")
        else:
            self.add_result("scripts_home", "ok", str(scripts_home))
            self._print("ok", f"Scripts home: {scripts_home}")

    def check_backend(self):
        """Check the sandbox backend: container runtime, or host interpreters for local."""
        console.print("\n[bold]Sandbox Backend[/bold]")
        config = self.executor_config

        if config.backend == "local":
            registry = build_default_registry(config)
            missing = []
            for adapter in registry.adapters():
                path = find_interpreter(adapter.interpreter)
                if path:
                    self._print("ok", f"{adapter.display_name}: {path}")
                else:
                    missing.append(adapter.interpreter)
                    self._print("warning", f"{adapter.display_name}: '{adapter.interpreter}' not on PATH")

            if len(missing) == len(registry):
                self.add_result("interpreters", "error", "No interpreter found for any language")
            elif missing:
                self.add_result(
                    "interpreters", "warning", f"Missing interpreters: {', '.join(missing)}"
                )
            else:
                self.add_result("interpreters", "ok", "All interpreters found")
            return

        preferred = config.backend if config.backend != "auto" else None
        running, info = verify_runtime_is_running(preferred)
        if running:
            self.add_result("container_runtime", "ok", f"Using {info}")
            self._print("ok", f"Container runtime: {info}")
        else:
            self.add_result("container_runtime", "error", "Container runtime unavailable", info)
            self._print("error", "Container runtime unavailable")

    def check_notifications(self):
        """Check the notification channels and the database directory."""
        console.print("\n[bold]Notifications[/bold]")
        notifications = self.configurable.get("notifications") or {}
        channels = notifications.get("channels") or []

        unknown = [c for c in channels if c not in ("broadcast", "database")]
        if unknown:
            self.add_result("notification_channels", "error", f"Unknown channels: {', '.join(unknown)}")
            self._print("error", f"Unknown channels: {', '.join(unknown)}")
            return

        self.add_result("notification_channels", "ok", ", ".join(channels))
        self._print("ok", f"Channels: {', '.join(channels) or 'none'}")

        if "database" in channels:
            db_path = Path(notifications.get("database_path", "./storage/notifications"))
            parent = db_path if db_path.exists() else db_path.parent
            if parent.exists() and os.access(parent, os.W_OK):
                self.add_result("notification_database", "ok", str(db_path))
                self._print("ok", f"Notification database: {db_path}")
            else:
                self.add_result(
                    "notification_database", "warning", f"Cannot write notifications to {db_path}"
                )
                self._print("warning", f"Notification database not writable: {db_path}")

    def display_results(self):
        """Display summary of health check results."""
        console.print()

        ok_count = sum(1 for r in self.results if r.status == "ok")
        warning_count = sum(1 for r in self.results if r.status == "warning")
        error_count = sum(1 for r in self.results if r.status == "error")

        summary = f"Summary: {ok_count}/{len(self.results)} checks passed"
        if warning_count > 0:
            summary += f" ({warning_count} warning{'s' if warning_count > 1 else ''})"
        if error_count > 0:
            summary += f" ({error_count} error{'s' if error_count > 1 else ''})"

        panel_content = [summary]
        if self.verbose and (warning_count > 0 or error_count > 0):
            panel_content.append("")
            panel_content.append("Details:")
            for result in self.results:
                if result.status in ("warning", "error"):
                    symbol = "⚠️ " if result.status == "warning" else "✗"
                    panel_content.append(f"  {symbol} {result.name}: {result.message}")
                    if result.details:
                        panel_content.append(f"     {result.details}")

        console.print(
            Panel(
                "\n".join(panel_content),
                title="Polyscript Health Check Results",
                border_style=Styles.BORDER_DIM,
                expand=False,
                padding=(1, 2),
            )
        )


@click.command()
@click.option(
    "--config-file",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to config.yml (default: ./config.yml or CONFIG_FILE)",
)
@click.option(
    "--verbose", "-v", is_flag=True, help="Show detailed information about warnings and errors"
)
def health(config_file: str | None, verbose: bool):
    """Check whether this host can execute scripts.

    Exit Codes:
    \b
      0 - All checks passed
      1 - Some warnings detected (non-critical)
      2 - Errors detected (critical issues)
    """
    checker = HealthChecker(verbose=verbose, config_path=Path(config_file) if config_file else None)
    checker.check_all()

    error_count = sum(1 for r in checker.results if r.status == "error")
    warning_count = sum(1 for r in checker.results if r.status == "warning")

    if error_count > 0:
        console.print(f"\n{Messages.error('Health check failed with errors')}")
        sys.exit(2)
    if warning_count > 0:
        console.print(f"\n{Messages.warning('Health check passed with warnings')}")
        sys.exit(1)
    console.print(f"\n{Messages.success('All checks passed')}")
