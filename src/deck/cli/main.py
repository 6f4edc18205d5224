"""Main CLI entry point for deck.

Subcommands are imported only when invoked so ``deck --help`` stays fast.
"""

import importlib
import sys

import click

# Windows consoles default to a legacy code page; status glyphs need UTF-8
if sys.platform == "win32":
    try:
        import io

        if sys.stdout.encoding.lower() != "utf-8":
            sys.stdout = io.TextIOWrapper(
                sys.stdout.buffer, encoding="utf-8", errors="replace", line_buffering=True
            )
        if sys.stderr.encoding.lower() != "utf-8":
            sys.stderr = io.TextIOWrapper(
                sys.stderr.buffer, encoding="utf-8", errors="replace", line_buffering=True
            )
    except (AttributeError, OSError):
        pass

from deck import __version__

# command name -> (module, attribute)
COMMANDS = {
    "start": ("deck.cli.start_cmd", "start"),
    "ps": ("deck.cli.container_cmds", "ps"),
    "stop": ("deck.cli.container_cmds", "stop"),
    "restart": ("deck.cli.container_cmds", "restart"),
    "logs": ("deck.cli.container_cmds", "logs"),
    "shell": ("deck.cli.container_cmds", "shell"),
    "images": ("deck.cli.images_cmd", "images"),
    "doctor": ("deck.cli.doctor_cmd", "doctor"),
}


class LazyGroup(click.Group):
    """Click group that lazily loads subcommands only when invoked."""

    def get_command(self, ctx, cmd_name):
        if cmd_name not in COMMANDS:
            return None
        module_path, attribute = COMMANDS[cmd_name]
        return getattr(importlib.import_module(module_path), attribute)

    def list_commands(self, ctx):
        return list(COMMANDS)


@click.group(cls=LazyGroup)
@click.version_option(version=__version__, prog_name="deck")
def cli():
    """deck - containerized development environments from templates.

    Use 'deck COMMAND --help' for more information on a specific command.

    Examples:

    \b
      deck start                 Pick an environment and start it
      deck start tauri           Only offer tauri configurations
      deck ps                    List this project's containers
      deck logs NAME --tail 50   Show recent container output
      deck shell NAME            Open a shell in a running container
      deck images list           List built environments
      deck doctor                Check engine, host and project setup
    """
    from .styles import initialize_theme_from_config

    initialize_theme_from_config()


def main():
    """Entry point for the deck CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nGoodbye!", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
