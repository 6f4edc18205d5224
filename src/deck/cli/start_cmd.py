"""The ``deck start`` command."""

import asyncio
import sys

import click

from deck.cli import styles
from deck.cli.project_utils import resolve_project_path
from deck.cli.styles import Messages, Styles
from deck.cli.ui import QuestionaryUI
from deck.engine.installer import GuidedEngineInstaller
from deck.launch import LaunchOrchestrator, NoopTemplateSync
from deck.models import LaunchResult


def _report(result: LaunchResult) -> None:
    if result.success:
        styles.console.print(Messages.success(result.message))
        if result.container_name:
            styles.console.print(Messages.label_value("Container", result.container_name))
            styles.console.print(f"   Open a shell: {Messages.command(f'deck shell {result.container_name}')}")
        return

    styles.console.print(Messages.error(result.message))
    if result.image_name:
        styles.console.print(Messages.label_value("Image", result.image_name))
    if result.suggestions:
        styles.console.print("\n💡 Try:", style=Styles.WARNING)
        for hint in result.suggestions:
            styles.console.print(f"   • {hint}")


@click.command()
@click.argument("env_type", required=False)
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
    help="Project directory (default: current directory or DECK_PROJECT env var)",
)
def start(env_type: str | None, project: str | None):
    """Pick an environment and bring its container up.

    ENV_TYPE filters the menu by project type (tauri, flutter, avalonia...).
    When omitted it is detected from files in the project directory.

    Examples:

    \b
      $ deck start
      $ deck start tauri
      $ deck start --project ~/src/my-app
    """
    project_root = resolve_project_path(project)
    ui = QuestionaryUI()
    orchestrator = LaunchOrchestrator(
        project_root,
        ui=ui,
        template_sync=NoopTemplateSync(),
        installer=GuidedEngineInstaller(ui.confirm),
    )

    try:
        result = asyncio.run(orchestrator.start(env_type))
    except KeyboardInterrupt:
        styles.console.print("\nCancelled", style=Styles.WARNING)
        sys.exit(130)

    _report(result)
    sys.exit(result.exit_code)
