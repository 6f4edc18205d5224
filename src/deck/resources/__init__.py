"""Three-layer resource hierarchy: layout, resolution, metadata and policy."""

from deck.resources.layout import DeckLayout, copy_resource, detect_project_type, unique_name
from deck.resources.resolver import ResourceResolver

__all__ = [
    "DeckLayout",
    "ResourceResolver",
    "copy_resource",
    "detect_project_type",
    "unique_name",
]
