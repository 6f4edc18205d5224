"""The ``deck doctor`` command.

Runs the same probes ``deck start`` relies on (engine detection, host
resources, project layout, configuration and default port availability) and
reports them without changing anything.
"""

import asyncio
import sys
from pathlib import Path

import click
import yaml
from rich.panel import Panel

from deck.cli import styles
from deck.cli.styles import Messages, Styles
from deck.engine import probe_engine
from deck.launch.host import probe_host_resources
from deck.models import EngineType
from deck.ports.conflict import PortConflictEngine
from deck.ports.env_file import DEFAULT_PORTS
from deck.resources import DeckLayout, detect_project_type
from deck.utils.config import ConfigProvider
from deck.utils.log_filter import quiet_logger


class DoctorCheckResult:
    """Outcome of one diagnostic."""

    def __init__(self, name: str, status: str, message: str = "", details: str = ""):
        self.name = name
        self.status = status  # "ok", "warning", "error"
        self.message = message
        self.details = details

    def __repr__(self):
        return f"DoctorCheckResult({self.name}, {self.status})"


class DoctorChecker:
    def __init__(self, project_path: Path, verbose: bool = False):
        self.project_path = project_path
        self.verbose = verbose
        self.layout = DeckLayout(project_path)
        self.results: list[DoctorCheckResult] = []

    def add_result(self, name: str, status: str, message: str = "", details: str = ""):
        self.results.append(DoctorCheckResult(name, status, message, details))
        printer = {"ok": Messages.success, "warning": Messages.warning, "error": Messages.error}[status]
        styles.console.print(f"  {printer(message)}")
        if details and self.verbose:
            styles.console.print(f"     [dim]{details}[/dim]")

    async def check_all(self) -> bool:
        styles.console.print(f"\n{Messages.header('🩺 deck doctor')}\n")
        with quiet_logger(["engine", "ports", "resources", "CONFIG"]):
            await self.check_engines()
            self.check_host()
            self.check_project()
            await self.check_ports()
        self.display_results()
        return not any(r.status == "error" for r in self.results)

    async def check_engines(self):
        styles.console.print("[bold]Container engine[/bold]")
        infos = await asyncio.gather(probe_engine(EngineType.PODMAN), probe_engine(EngineType.DOCKER))
        if not any(info.is_available for info in infos):
            installed = [info for info in infos if info.install_path]
            detail = installed[0].error_message if installed else "Install Podman (recommended) or Docker"
            self.add_result("engine", "error", "No usable container engine", detail or "")
        for info in infos:
            label = info.type.value
            if info.is_available:
                self.add_result(f"engine_{label}", "ok", f"{label} {info.version or ''}".rstrip(), str(info.install_path))
            elif info.install_path:
                self.add_result(f"engine_{label}", "warning", f"{label} installed but not usable", info.error_message or "")

    def check_host(self):
        styles.console.print("\n[bold]Host resources[/bold]")
        resources = probe_host_resources(self.project_path)
        for warning in resources.warnings:
            self.add_result("host_resources", "warning", warning)
        if not resources.warnings:
            gib = 1024**3
            self.add_result(
                "host_resources",
                "ok",
                f"{resources.free_disk_bytes / gib:.0f} GiB disk free, "
                f"{resources.available_memory_bytes / gib:.1f} GiB memory available",
                "estimated" if resources.estimated else "",
            )

    def check_project(self):
        styles.console.print("\n[bold]Project[/bold]")
        self.add_result("project_type", "ok", f"Project type: {detect_project_type(self.project_path)}")

        provider = ConfigProvider(self.project_path)
        if not provider.exists():
            self.add_result("config", "warning", "No .deck/config.yml yet", "Created on first 'deck start'")
        else:
            try:
                config = provider.get_config()
                self.add_result("config", "ok", "Configuration is valid", f"engine preference: {config.container.engine}")
            except (ValueError, yaml.YAMLError) as e:
                self.add_result("config", "error", "Configuration is invalid", str(e))

        if self.layout.has_templates():
            count = sum(1 for child in self.layout.templates_dir.iterdir() if child.is_dir())
            self.add_result("templates", "ok", f"{count} local template(s)")
        else:
            self.add_result("templates", "warning", "No local templates", str(self.layout.templates_dir))

    async def check_ports(self):
        styles.console.print("\n[bold]Default ports[/bold]")
        engine = PortConflictEngine()
        conflicts = await engine.detect_conflicts(list(DEFAULT_PORTS.values()))
        if not conflicts:
            self.add_result("ports", "ok", "All default ports are free")
        for conflict in conflicts:
            owner = conflict.occupying_process
            who = f"{owner.process_name} (PID {owner.process_id})" if owner else "unknown process"
            self.add_result(f"port_{conflict.port}", "warning", f"Port {conflict.port} is used by {who}")

    def display_results(self):
        styles.console.print()
        ok_count = sum(1 for r in self.results if r.status == "ok")
        warning_count = sum(1 for r in self.results if r.status == "warning")
        error_count = sum(1 for r in self.results if r.status == "error")

        summary = f"Summary: {ok_count}/{len(self.results)} checks passed"
        if warning_count:
            summary += f" ({warning_count} warning{'s' if warning_count > 1 else ''})"
        if error_count:
            summary += f" ({error_count} error{'s' if error_count > 1 else ''})"
        styles.console.print(Panel(summary, title="deck doctor", border_style=Styles.BORDER_DIM, expand=False, padding=(1, 2)))


@click.command()
@click.option(
    "--project",
    "-p",
    type=click.Path(exists=True, file_okay=False, dir_okay=True),
    help="Project directory (default: current directory or DECK_PROJECT env var)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show details for every check")
def doctor(project: str | None, verbose: bool):
    """Diagnose the container engine, host and project setup.

    Exit Codes:
    \b
      0 - All checks passed
      1 - Warnings only
      2 - Errors detected
    """
    from .project_utils import resolve_project_path

    checker = DoctorChecker(resolve_project_path(project), verbose=verbose)
    try:
        asyncio.run(checker.check_all())
    except KeyboardInterrupt:
        styles.console.print(f"\n{Messages.warning('Doctor interrupted')}")
        sys.exit(130)

    if any(r.status == "error" for r in checker.results):
        sys.exit(2)
    if any(r.status == "warning" for r in checker.results):
        sys.exit(1)
    styles.console.print(Messages.success("All checks passed"), style=Styles.SUCCESS)
