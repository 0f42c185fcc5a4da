"""Main CLI entry point for Polyscript.

This module provides the main CLI group that organizes all polyscript
commands under the `polyscript` command namespace.

Commands are imported lazily so `polyscript --help` stays fast.
"""

import sys

import click

from polyscript import __version__


class LazyGroup(click.Group):
    """Click group that lazily loads subcommands only when invoked."""

    commands_map = {
        "run": "polyscript.cli.run_cmd",
        "languages": "polyscript.cli.languages_cmd",
        "health": "polyscript.cli.health_cmd",
    }

    def get_command(self, ctx, cmd_name):
        """Lazily import and return the command when it's invoked."""
        if cmd_name not in self.commands_map:
            return None

        import importlib

        mod = importlib.import_module(self.commands_map[cmd_name])

        # Convention: command function named after the command
        return getattr(mod, cmd_name)

    def list_commands(self, ctx):
        """Return list of available commands (for --help)."""
        return ["run", "languages", "health"]


@click.group(cls=LazyGroup)
@click.version_option(version=__version__, prog_name="polyscript")
def cli():
    """Polyscript - polyglot script execution engine.

    Runs PHP, Lua, Python and JavaScript scripts in disposable, resource-bounded
    sandboxes.

    Use 'polyscript COMMAND --help' for more information on a specific command.

    Examples:

    \b
      polyscript run -l lua --code 'return {response=1}'
      polyscript run -l php script.php --data '{"name": "Taylor"}'
      polyscript languages
      polyscript health
    """


def main():
    """Entry point for the polyscript CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
