"""Command-line interface for deck.

Commands:
    - start: Interactive launch workflow
    - ps, stop, restart, logs, shell: Container operations
    - images: Inspect built environments
    - doctor: Environment diagnostics

Commands are lazy-loaded for fast startup time.
"""

from .main import cli, main

__all__ = ["cli", "main"]
