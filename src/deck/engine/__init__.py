"""Container engine detection and Podman/Docker lifecycle handles."""

from deck.engine.detection import detect_engine, probe_engine
from deck.engine.handles import ContainerEngine, DockerEngine, PodmanEngine, get_compatible_engine

__all__ = [
    "ContainerEngine",
    "DockerEngine",
    "PodmanEngine",
    "detect_engine",
    "get_compatible_engine",
    "probe_engine",
]
