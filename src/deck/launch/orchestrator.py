"""The ``start`` workflow.

Ties the resolver, port engine, engine detection and lifecycle controller into
one interactive session:

1. ensure the ``.deck`` skeleton and configuration exist
2. sync templates when auto-update is on and the cache is stale
3. resolve resources for the detected (or given) project type
4. let the user pick an Image, Custom configuration or Template
5. make sure a container engine is usable
6. materialize the selection into an Images entry
7. run the port pipeline on the image's ``.env`` unless its container already runs
8. hand over to the lifecycle controller

Every failure is turned into a :class:`LaunchResult` here, so no exception
escapes :meth:`LaunchOrchestrator.start` except cancellation.
"""

import asyncio
import getpass
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

from deck.engine.detection import detect_engine
from deck.engine.handles import ContainerEngine, get_compatible_engine
from deck.engine.installer import EngineInstaller
from deck.environment import apply_environment, container_name, environment_of, project_name_for
from deck.exceptions import (
    ConfigurationMissingError,
    DeckError,
    EngineInstallFailedError,
    EngineUnavailableError,
    PortConflictUnresolvedError,
)
from deck.launch.collaborators import (
    InteractiveUI,
    MenuOption,
    NoopTemplateSync,
    TemplateSyncProvider,
    TemplateWorkflow,
)
from deck.launch.host import probe_host_resources
from deck.lifecycle.controller import LifecycleController
from deck.models import (
    BuildStatus,
    ContainerEngineInfo,
    ContainerStatus,
    EnvironmentType,
    ImageMetadata,
    LaunchResult,
    Layer,
    ResolvedResources,
    Selection,
    SelectionKind,
    StartOptions,
)
from deck.ports.conflict import PortConflictEngine
from deck.ports.env_file import (
    apply_port_changes,
    plan_port_changes,
    port_mappings,
    read_ports,
    update_project_name,
)
from deck.resources.layout import DeckLayout, copy_resource, detect_project_type, unique_name
from deck.resources.metadata import update_build_status, write_metadata
from deck.resources.resolver import ResourceResolver, missing_required_files
from deck.utils.config import ConfigProvider, DeckConfig
from deck.utils.logger import get_logger

logger = get_logger("launch")

NO_TEMPLATES_MESSAGE = "No templates available, check network or add templates manually"
SYNC_MARKER = ".templates-synced"
IMAGE_TIMESTAMP_FORMAT = "%Y%m%d-%H%M"
MAX_SUGGESTIONS = 3


def image_name_for(images_dir: Path, config_name: str, env: EnvironmentType, now: datetime) -> str:
    """``<config>-<yyyymmdd-HHMM>-<suffix>``, numbered before the suffix if taken.

    The environment suffix always stays last so the environment can be read
    back from the name.
    """
    stem = f"{config_name}-{now.strftime(IMAGE_TIMESTAMP_FORMAT)}"
    name = f"{stem}-{env.suffix}"
    counter = 1
    while (images_dir / name).exists():
        name = f"{stem}-{counter}-{env.suffix}"
        counter += 1
    return name


class LaunchOrchestrator:
    """Runs one ``start`` session for a project root.

    Args:
        project_root: Directory containing (or that will contain) ``.deck``
        ui: Interactive UI collaborator
        template_sync: Template sync collaborator
        installer: Engine installer collaborator; ``None`` disables installation
        ports: Port conflict engine
        engine_detector: Coroutine returning the current engine info
        engine_factory: Builds an engine handle for a detected engine type
        clock: Returns "now"; used for image timestamps and backups
    """

    def __init__(
        self,
        project_root: str | Path,
        *,
        ui: InteractiveUI,
        template_sync: TemplateSyncProvider | None = None,
        installer: EngineInstaller | None = None,
        config_provider: ConfigProvider | None = None,
        ports: PortConflictEngine | None = None,
        engine_detector: Callable[[], Awaitable[ContainerEngineInfo]] = detect_engine,
        engine_factory: Callable[..., ContainerEngine] = get_compatible_engine,
        clock: Callable[[], datetime] | None = None,
    ):
        self.project_root = Path(project_root)
        self.layout = DeckLayout(self.project_root)
        self.ui = ui
        self.template_sync = template_sync or NoopTemplateSync()
        self.installer = installer
        self.config_provider = config_provider or ConfigProvider(self.project_root)
        self.ports = ports or PortConflictEngine()
        self.engine_detector = engine_detector
        self.engine_factory = engine_factory
        self.clock = clock or datetime.now
        self.resolver = ResourceResolver(self.layout)

        self._image_name: str | None = None
        self._container_name: str | None = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def start(self, env_type: str | None = None) -> LaunchResult:
        """Run the whole workflow and report a structured result.

        Args:
            env_type: Project type used to filter resources (``tauri``,
                ``flutter``...). Detected from marker files when omitted.
        """
        self._image_name = None
        self._container_name = None
        try:
            return await self._run(env_type)
        except asyncio.CancelledError:
            raise
        except DeckError as e:
            logger.error(e.message)
            return self._failure(e.message, e.suggestions)
        except Exception as e:
            logger.exception(f"Unexpected error during start: {e}")
            return self._failure(f"Unexpected error: {e}")

    def _failure(self, message: str, suggestions: list[str] | None = None) -> LaunchResult:
        return LaunchResult(
            success=False,
            message=message,
            image_name=self._image_name,
            container_name=self._container_name,
            suggestions=list(suggestions or []),
        )

    async def _run(self, env_type: str | None) -> LaunchResult:
        self.layout.ensure_skeleton()
        self.config_provider.ensure()
        config = self.config_provider.get_config()

        await self._sync_templates(config)

        project_type = env_type or detect_project_type(self.project_root)
        logger.info(f"Project type: {project_type}")
        resolved = self.resolver.resolve(project_type)
        if resolved.is_empty and env_type is None:
            # A detected type is only a hint; show everything rather than nothing
            resolved = self.resolver.resolve(None)
        if resolved.is_empty:
            raise ConfigurationMissingError(
                NO_TEMPLATES_MESSAGE,
                suggestions=[
                    f"Copy a template directory into {self.layout.templates_dir}",
                    "Check your network connection and templates.repository in .deck/config.yml",
                ],
            )

        selection = await self._select(resolved)
        if selection is None:
            return LaunchResult(success=False, message="Cancelled by user")

        engine = await self._prepare_host(config)

        if selection.kind is SelectionKind.TEMPLATE:
            workflow = await self.ui.select(
                f"What do you want to do with template '{selection.resource.name}'?",
                [
                    MenuOption("Create an editable configuration (copy to custom/)", TemplateWorkflow.CREATE_CONFIG),
                    MenuOption("Build and start directly", TemplateWorkflow.DIRECT_BUILD),
                ],
            )
            if workflow is None:
                return LaunchResult(success=False, message="Cancelled by user")
            if workflow is TemplateWorkflow.CREATE_CONFIG:
                custom_dir = self._copy_template_to_custom(selection.resource.path)
                return LaunchResult(
                    success=True,
                    message=(
                        f"Created editable configuration custom/{custom_dir.name}. "
                        "Edit it, then run 'deck start' and pick it."
                    ),
                )
            env = EnvironmentType.DEVELOPMENT
            custom_dir = self._copy_template_to_custom(selection.resource.path)
            image_dir = self._materialize_image(custom_dir, env, config)
        elif selection.kind is SelectionKind.CUSTOM:
            env = await self._select_environment()
            if env is None:
                return LaunchResult(success=False, message="Cancelled by user")
            image_dir = self._materialize_image(selection.resource.path, env, config)
        else:
            image_dir = selection.resource.path
            env = environment_of(image_dir.name)

        return await self._launch_image(image_dir, env, engine)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _templates_stale(self, config: DeckConfig) -> bool:
        marker = self.layout.deck_dir / SYNC_MARKER
        if not marker.exists():
            return True
        synced_at = datetime.fromtimestamp(marker.stat().st_mtime, tz=timezone.utc)
        return datetime.now(timezone.utc) - synced_at > config.cache_ttl

    async def _sync_templates(self, config: DeckConfig) -> None:
        if not config.templates.auto_update or not self._templates_stale(config):
            return

        logger.info(f"Syncing templates from {config.templates.repository} ({config.templates.branch})")
        result = await self.template_sync.sync(force=False)
        if result.success:
            (self.layout.deck_dir / SYNC_MARKER).touch()
            logger.success(f"Synced {result.synced_count} templates")
            return

        for line in result.logs:
            logger.debug(line)
        if not self.layout.has_templates():
            raise ConfigurationMissingError(
                NO_TEMPLATES_MESSAGE,
                suggestions=[f"Copy a template directory into {self.layout.templates_dir}"],
            )
        logger.warning("Template sync failed; continuing with local templates")

    async def _select(self, resolved: ResolvedResources) -> Selection | None:
        kinds = {Layer.IMAGES: SelectionKind.IMAGE, Layer.CUSTOM: SelectionKind.CUSTOM, Layer.TEMPLATES: SelectionKind.TEMPLATE}
        options = []
        for resource in resolved.all():
            age = f" ({resource.relative_age})" if resource.relative_age else ""
            options.append(
                MenuOption(
                    f"[{resource.layer.label}] {resource.name}{age}",
                    Selection(kinds[resource.layer], resource),
                    disabled=None if resource.is_available else resource.unavailable_reason,
                )
            )

        if all(option.disabled for option in options):
            raise ConfigurationMissingError(
                "No launchable configuration: every entry is missing required files",
                suggestions=[f"{o.value.resource.name}: {o.disabled}" for o in options[:MAX_SUGGESTIONS]],
            )
        return await self.ui.select("Select an environment to start", options)

    async def _select_environment(self) -> EnvironmentType | None:
        options = [
            MenuOption(f"{env.value} (-{env.suffix}, port offset +{env.default_port_offset})", env)
            for env in EnvironmentType
        ]
        return await self.ui.select("Which environment?", options)

    async def _ensure_engine(self, config: DeckConfig) -> ContainerEngine:
        info = await self.engine_detector()
        if not info.is_available:
            logger.warning(info.error_message or "No container engine available")
            if self.installer is None or not config.container.auto_install:
                raise EngineUnavailableError(
                    info.error_message or "No container engine available",
                    suggestions=["Install Podman with podman-compose, or Docker with docker-compose"],
                )
            if not await self.installer.ensure_installed():
                raise EngineInstallFailedError(
                    "Container engine installation did not complete",
                    suggestions=["Install Podman manually: https://podman.io/docs/installation"],
                )
            info = await self.engine_detector()
            if not info.is_available:
                raise EngineUnavailableError(info.error_message or "Container engine still unavailable")

        logger.info(f"Using {info.type.value} {info.version or ''}".rstrip())
        return self.engine_factory(info.type)

    async def _prepare_host(self, config: DeckConfig) -> ContainerEngine:
        """Usable engine handle; low disk or memory is only reported."""
        engine = await self._ensure_engine(config)
        for warning in probe_host_resources(self.project_root).warnings:
            logger.warning(warning)
        return engine

    def _copy_template_to_custom(self, template_dir: Path) -> Path:
        name = unique_name(self.layout.custom_dir, template_dir.name)
        return copy_resource(template_dir, self.layout.custom_dir / name)

    def _materialize_image(self, source_dir: Path, env: EnvironmentType, config: DeckConfig) -> Path:
        """Copy a Custom directory into a new timestamped Images entry for ``env``."""
        missing = missing_required_files(source_dir)
        if missing:
            raise ConfigurationMissingError(
                f"Configuration '{source_dir.name}' is missing {', '.join(missing)}", missing_files=missing
            )

        now = self.clock()
        image_name = image_name_for(self.layout.images_dir, source_dir.name, env, now)
        self._image_name = image_name
        image_dir = copy_resource(source_dir, self.layout.images_dir / image_name)

        apply_environment(
            image_dir, env, project_name_for(image_name, env), config.environments.port_offsets
        )
        try:
            created_by = getpass.getuser()
        except (OSError, KeyError):
            created_by = ""
        write_metadata(
            image_dir,
            ImageMetadata(
                image_name=image_name,
                created_at=now.astimezone(timezone.utc),
                created_by=created_by,
                source_config=f"custom/{source_dir.name}",
                build_status=BuildStatus.BUILDING,
                container_name=container_name(image_name, env),
            ),
        )
        return image_dir

    async def _port_pipeline(self, image_dir: Path, project_name: str) -> None:
        """Detect → suggest → confirm → rewrite on the image's ``.env``.

        Raises:
            PortConflictUnresolvedError: If the user declines or no alternative exists;
                ``.env`` is untouched in that case
        """
        env_path = image_dir / ".env"
        plan = await plan_port_changes(env_path, self.ports)

        if plan.has_conflicts:
            self.ui.show_port_plan(plan)
            hints = [
                suggestion.description
                for port in plan.suggestions
                for suggestion in plan.suggestions[port][:MAX_SUGGESTIONS]
            ]
            conflicted = [conflict.port for conflict in plan.conflicts]
            if not plan.is_resolvable:
                raise PortConflictUnresolvedError(
                    f"No free alternative found for port(s) {', '.join(map(str, plan.unresolved))}",
                    ports=plan.unresolved,
                    suggestions=hints,
                )
            if not await self.ui.confirm("Rewrite the conflicting ports in .env?", default=False):
                raise PortConflictUnresolvedError(
                    "Port conflicts left unresolved; .env was not changed",
                    ports=conflicted,
                    suggestions=hints,
                )
            backup = apply_port_changes(env_path, plan.changes, self.clock)
            logger.success(f"Updated ports in .env (backup: {backup})")

        try:
            update_project_name(env_path, project_name)
        except OSError as e:
            logger.warning(f"Could not update PROJECT_NAME, keeping the original: {e}")

    async def _launch_image(self, image_dir: Path, env: EnvironmentType, engine: ContainerEngine) -> LaunchResult:
        image_name = image_dir.name
        self._image_name = image_name
        missing = missing_required_files(image_dir)
        if missing:
            raise ConfigurationMissingError(
                f"Image '{image_name}' is missing {', '.join(missing)}", missing_files=missing
            )

        name = container_name(image_name, env)
        self._container_name = name
        # A running container holds its own published ports
        if await engine.get_status(name) is ContainerStatus.RUNNING:
            logger.info(f"Container {name} is running; skipping the port check")
        else:
            await self._port_pipeline(image_dir, project_name_for(image_name, env))

        controller = LifecycleController(engine, self.ports)
        result = await controller.start_container(
            name,
            StartOptions(
                compose_directory=image_dir,
                port_mappings=port_mappings(read_ports(image_dir / ".env")),
            ),
        )

        if not result.success:
            update_build_status(image_dir, BuildStatus.FAILED, container_name=name)
            return self._failure(
                result.message, [suggestion.description for suggestion in result.suggestions]
            )

        update_build_status(
            image_dir,
            BuildStatus.RUNNING,
            container_name=name,
            started_at=datetime.now(timezone.utc),
        )
        logger.success(result.message)
        return LaunchResult(
            success=True,
            message=result.message,
            image_name=image_name,
            container_name=name,
        )
