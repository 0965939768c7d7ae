"""Component backends with lazy loading of driver-backed implementations."""

from typing import TYPE_CHECKING

from .base import PRIMARY_ARTIFACTS, ComponentBackend, ComponentSnapshot
from .config_snapshot import ConfigSnapshotBackend

if TYPE_CHECKING:
    from .graph import GraphBackend
    from .vector import VectorBackend
    from .relational import RelationalBackend


def __getattr__(name):
    """Lazy import backends that pull in database drivers."""
    if name == "GraphBackend":
        from .graph import GraphBackend
        return GraphBackend
    elif name == "VectorBackend":
        from .vector import VectorBackend
        return VectorBackend
    elif name == "RelationalBackend":
        from .relational import RelationalBackend
        return RelationalBackend
    else:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "PRIMARY_ARTIFACTS",
    "ComponentBackend",
    "ComponentSnapshot",
    "ConfigSnapshotBackend",
    "GraphBackend",
    "VectorBackend",
    "RelationalBackend",
]
