"""Deck development environment launcher.

Bootstraps containerized development environments from the layered
``.deck/templates`` → ``.deck/custom`` → ``.deck/images`` hierarchy and drives
the resulting container through Podman or Docker.

This package contains:
- Resource resolution across the three layers
- Port conflict detection and resolution
- Container engine detection and lifecycle control
- The ``start`` launch orchestration
"""

# Version information
__version__ = "0.4.0"

__all__ = ["__version__"]
