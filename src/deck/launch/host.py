"""Best-effort host resource probing.

Low disk or memory only produces a warning. If probing fails, generous
defaults are assumed so a broken probe never blocks a launch.
"""

from dataclasses import dataclass
from pathlib import Path

import psutil

from deck.utils.logger import get_logger

logger = get_logger("launch")

GIB = 1024**3

ASSUMED_FREE_DISK = 100 * GIB
ASSUMED_AVAILABLE_MEMORY = 16 * GIB

MIN_FREE_DISK = 5 * GIB
MIN_AVAILABLE_MEMORY = 2 * GIB


@dataclass(frozen=True)
class HostResources:
    free_disk_bytes: int
    available_memory_bytes: int
    estimated: bool = False

    @property
    def warnings(self) -> list[str]:
        notes = []
        if self.free_disk_bytes < MIN_FREE_DISK:
            notes.append(f"Only {self.free_disk_bytes / GIB:.1f} GiB of disk space free; image builds may fail")
        if self.available_memory_bytes < MIN_AVAILABLE_MEMORY:
            notes.append(f"Only {self.available_memory_bytes / GIB:.1f} GiB of memory available")
        return notes


def probe_host_resources(path: Path) -> HostResources:
    """Free disk under ``path`` and available memory."""
    estimated = False
    try:
        free_disk = psutil.disk_usage(str(path)).free
    except (OSError, psutil.Error) as e:
        logger.debug(f"Disk probe failed ({e}); assuming {ASSUMED_FREE_DISK // GIB} GiB free")
        free_disk, estimated = ASSUMED_FREE_DISK, True
    try:
        memory = psutil.virtual_memory().available
    except (OSError, psutil.Error) as e:
        logger.debug(f"Memory probe failed ({e}); assuming {ASSUMED_AVAILABLE_MEMORY // GIB} GiB available")
        memory, estimated = ASSUMED_AVAILABLE_MEMORY, True
    return HostResources(free_disk, memory, estimated)
