"""Engine installer collaborator.

The launch workflow only needs to know whether an engine is available after an
install attempt. How the engine gets installed (package managers, installers,
direct downloads) is the installer's business.
"""

import platform
from collections.abc import Awaitable, Callable
from typing import Protocol

from deck.engine.detection import detect_engine
from deck.utils.logger import get_logger

logger = get_logger("engine")

INSTALL_GUIDES = {
    "Darwin": "https://podman.io/docs/installation#macos",
    "Windows": "https://podman.io/docs/installation#windows",
    "Linux": "https://podman.io/docs/installation#installing-on-linux",
}


class EngineInstaller(Protocol):
    async def ensure_installed(self) -> bool:
        """Make a container engine available; True if one is usable afterwards."""
        ...


class GuidedEngineInstaller:
    """Points the user at the platform install guide and waits for them.

    Args:
        confirm: Async yes/no prompt; the user answers once the install is done
        enabled: ``container.auto_install`` from configuration
    """

    def __init__(self, confirm: Callable[[str], Awaitable[bool]], enabled: bool = True):
        self.confirm = confirm
        self.enabled = enabled

    async def ensure_installed(self) -> bool:
        if not self.enabled:
            logger.warning("Automatic engine installation is disabled (container.auto_install)")
            return False

        guide = INSTALL_GUIDES.get(platform.system(), INSTALL_GUIDES["Linux"])
        logger.key_info(f"Install Podman (with podman-compose) following {guide}")
        if not await self.confirm("Have you installed a container engine?"):
            return False

        info = await detect_engine()
        if not info.is_available:
            logger.error(info.error_message or "Container engine still unavailable")
        return info.is_available
