"""The ``deck images`` command group.

Lists and describes the built environments under ``.deck/images``. Removing
or renaming one is refused: each directory is tied to the container image
built from it.
"""

import click
from rich.table import Table

from deck.cli import styles
from deck.cli.project_utils import resolve_project_path
from deck.cli.styles import Messages, Styles
from deck.models import Layer
from deck.resources import DeckLayout, ResourceResolver
from deck.resources.metadata import read_metadata
from deck.resources.policy import DirectoryOperation, check_directory_operation

project_option = click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
    help="Project directory (default: current directory or DECK_PROJECT env var)",
)


def _layout(project: str | None) -> DeckLayout:
    return DeckLayout(resolve_project_path(project))


def _refuse(layout: DeckLayout, name: str, operation: DirectoryOperation):
    result = check_directory_operation(layout, layout.images_dir / name, operation)
    if result.is_allowed:
        return
    styles.console.print(Messages.error(result.reason))
    for alternative in result.alternatives:
        styles.console.print(f"   • {alternative}")
    raise click.Abort()


@click.group()
def images():
    """Inspect built environments in .deck/images."""


@images.command("list")
@project_option
def list_images(project: str | None):
    """List images, newest first."""
    layout = _layout(project)
    resources = ResourceResolver(layout).resolve().images
    if not resources:
        styles.console.print("No images yet. Run 'deck start' to build one.", style=Styles.DIM)
        return

    table = Table(border_style=Styles.BORDER_DIM)
    table.add_column("Image", style=Styles.LABEL)
    table.add_column("Created")
    table.add_column("Status")
    table.add_column("Container", style=Styles.DIM)
    for resource in resources:
        metadata = read_metadata(resource.path)
        status = metadata.build_status.value if metadata else "-"
        if not resource.is_available:
            status = f"[{Styles.ERROR}]{resource.unavailable_reason}[/]"
        table.add_row(
            resource.name,
            resource.relative_age,
            status,
            (metadata.container_name if metadata else None) or "-",
        )
    styles.console.print(table)


@images.command()
@click.argument("name")
@project_option
def info(name: str, project: str | None):
    """Show metadata recorded for image NAME."""
    layout = _layout(project)
    resource = ResourceResolver(layout).find(Layer.IMAGES, name)
    if resource is None:
        styles.console.print(Messages.error(f"No image named '{name}'"))
        raise click.Abort()

    styles.console.print(Messages.header(resource.name))
    styles.console.print(Messages.label_value("Path", str(resource.path)))
    metadata = read_metadata(resource.path)
    if metadata is None:
        styles.console.print(Messages.warning("No metadata recorded"))
        return

    styles.console.print(Messages.label_value("Status", metadata.build_status.value))
    styles.console.print(Messages.label_value("Source", metadata.source_config or "-"))
    styles.console.print(Messages.label_value("Created by", metadata.created_by or "-"))
    if metadata.created_at:
        styles.console.print(Messages.label_value("Created", metadata.created_at.isoformat()))
    if metadata.last_started:
        styles.console.print(Messages.label_value("Last started", metadata.last_started.isoformat()))
    if metadata.container_name:
        styles.console.print(Messages.label_value("Container", metadata.container_name))
    if metadata.runtime_variables:
        styles.console.print("\n[bold]Runtime variables[/bold]")
        for key, value in sorted(metadata.runtime_variables.items()):
            styles.console.print(f"  {key}={value}")


@images.command()
@click.argument("name")
@project_option
def rm(name: str, project: str | None):
    """Remove image NAME (refused; see alternatives)."""
    _refuse(_layout(project), name, DirectoryOperation.DELETE)


@images.command()
@click.argument("name")
@click.argument("new_name")
@project_option
def rename(name: str, new_name: str, project: str | None):
    """Rename image NAME to NEW_NAME (refused; see alternatives)."""
    _refuse(_layout(project), name, DirectoryOperation.RENAME)
