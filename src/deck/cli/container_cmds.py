"""Commands operating on existing containers: ``ps``, ``stop``, ``restart``, ``logs``, ``shell``.

Each command detects the container engine first and aborts with a hint when
none is usable.
"""

import asyncio
import sys

import click
from rich.table import Table

from deck.cli import styles
from deck.cli.project_utils import resolve_project_path
from deck.cli.styles import Messages, Styles
from deck.engine import detect_engine, get_compatible_engine
from deck.engine.handles import ContainerEngine
from deck.environment import container_name, environment_of
from deck.exceptions import DeckError
from deck.lifecycle import LifecycleController
from deck.models import ContainerStatus
from deck.ports.conflict import PortConflictEngine
from deck.resources import DeckLayout
from deck.resources.metadata import read_metadata

project_option = click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
    help="Project directory (default: current directory or DECK_PROJECT env var)",
)


async def connect_engine() -> ContainerEngine:
    """Handle for the detected engine.

    Raises:
        click.Abort: If no engine is usable
    """
    info = await detect_engine(remediate=False)
    if not info.is_available:
        styles.console.print(Messages.error(info.error_message or "No container engine available"))
        styles.console.print(f"   Run {Messages.command('deck doctor')} for details")
        raise click.Abort()
    return get_compatible_engine(info.type)


def _run(coro):
    try:
        return asyncio.run(coro)
    except DeckError as e:
        styles.console.print(Messages.error(e.get_user_message()))
        raise click.Abort() from None


def project_container_names(layout: DeckLayout) -> set[str]:
    """Container names of every image built in this project."""
    names = set()
    if not layout.images_dir.is_dir():
        return names
    for image_dir in layout.images_dir.iterdir():
        if not image_dir.is_dir():
            continue
        metadata = read_metadata(image_dir)
        if metadata and metadata.container_name:
            names.add(metadata.container_name)
        else:
            names.add(container_name(image_dir.name, environment_of(image_dir.name)))
    return names


_STATUS_STYLES = {
    ContainerStatus.RUNNING: Styles.SUCCESS,
    ContainerStatus.EXITED: Styles.DIM,
    ContainerStatus.DEAD: Styles.ERROR,
}


@click.command()
@project_option
@click.option("--all", "-a", "show_all", is_flag=True, help="Show containers from every project")
def ps(project: str | None, show_all: bool):
    """List containers created from this project's images."""

    async def _list():
        engine = await connect_engine()
        return await engine.list_containers()

    containers = _run(_list())
    if not show_all:
        wanted = project_container_names(DeckLayout(resolve_project_path(project)))
        containers = [c for c in containers if c.name in wanted]

    if not containers:
        styles.console.print("No containers found", style=Styles.DIM)
        return

    table = Table(border_style=Styles.BORDER_DIM)
    table.add_column("Name", style=Styles.LABEL)
    table.add_column("Status")
    table.add_column("Image", style=Styles.DIM)
    table.add_column("Ports")
    for info in containers:
        ports = ", ".join(f"{m.host_port}->{m.container_port}/{m.protocol.value}" for m in info.port_mappings)
        table.add_row(
            info.name,
            f"[{_STATUS_STYLES.get(info.status, Styles.WARNING)}]{info.status.value}[/]",
            info.image,
            ports or "-",
        )
    styles.console.print(table)


@click.command()
@click.argument("name")
@click.option("--force", "-f", is_flag=True, help="Kill immediately instead of waiting for a clean shutdown")
def stop(name: str, force: bool):
    """Stop the running container NAME."""

    async def _stop():
        controller = LifecycleController(await connect_engine(), PortConflictEngine())
        return await controller.stop_container(name, force=force)

    if _run(_stop()):
        styles.console.print(Messages.success(f"Stopped {name}"))
    else:
        styles.console.print(Messages.warning(f"{name} was not running"))


@click.command()
@click.argument("name")
def restart(name: str):
    """Restart the container NAME."""

    async def _restart():
        controller = LifecycleController(await connect_engine(), PortConflictEngine())
        return await controller.restart_container(name)

    if not _run(_restart()):
        styles.console.print(Messages.error(f"Container {name} does not exist"))
        styles.console.print(f"   Create it with {Messages.command('deck start')}")
        raise click.Abort()
    styles.console.print(Messages.success(f"Restarted {name}"))


@click.command()
@click.argument("name")
@click.option("--tail", "-n", type=int, default=None, help="Only show the last N lines")
@click.option("--follow", "-f", is_flag=True, help="Stream new output until interrupted")
def logs(name: str, tail: int | None, follow: bool):
    """Show the output of container NAME."""

    async def _logs():
        controller = LifecycleController(await connect_engine(), PortConflictEngine())
        if follow:
            return await controller.follow_logs(name, tail=tail)
        return await controller.container_logs(name, tail=tail)

    try:
        output = _run(_logs())
    except KeyboardInterrupt:
        sys.exit(130)
    if follow:
        sys.exit(output)
    click.echo(output, nl=False)


@click.command()
@click.argument("name")
@click.option("--shell", "shell_binary", default="bash", show_default=True, help="Shell to run inside the container")
def shell(name: str, shell_binary: str):
    """Open an interactive shell in container NAME."""

    async def _shell():
        controller = LifecycleController(await connect_engine(), PortConflictEngine())
        return await controller.shell(name, shell=shell_binary)

    code = _run(_shell())
    if code is None:
        styles.console.print(Messages.error(f"{name} is not running"))
        styles.console.print(f"   Start it with {Messages.command('deck start')}")
        raise click.Abort()
    sys.exit(code)
