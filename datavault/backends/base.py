"""Component backend interface: the only way orchestrators touch live data."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping

from ..errors import BackupOperationError, ErrorCode
from ..models import Component, ComponentValidation, ValidationStatus

# Primary artifact per component, stored as ``{backup_id}_{name}``
PRIMARY_ARTIFACTS: Dict[Component, str] = {
    Component.GRAPH: "falkordb.dump",
    Component.VECTOR: "qdrant_collections.json",
    Component.RELATIONAL: "postgres.json",
    Component.CONFIG: "config.json",
}


@dataclass
class ComponentSnapshot:
    """Artifacts produced by one component export, keyed by artifact name.

    The primary artifact is always present. Multi-part components list their
    sub-artifacts under an ``"artifacts"`` key of the (JSON) primary artifact
    and name them with a ``/`` so they land in a per-backup directory.
    """

    component: Component
    artifacts: Dict[str, bytes] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def primary_name(self) -> str:
        return PRIMARY_ARTIFACTS[self.component]

    @property
    def primary(self) -> bytes:
        return self.artifacts[self.primary_name]


class ComponentBackend(ABC):
    """Export/import adapter for one data source."""

    component: Component

    @property
    def name(self) -> str:
        return self.component.value

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the live backend is reachable."""

    @abstractmethod
    async def export_snapshot(self) -> ComponentSnapshot:
        ...

    @abstractmethod
    async def import_snapshot(self, snapshot: ComponentSnapshot) -> Dict[str, Any]:
        """Replace live data with the snapshot contents and return restore details."""

    def inspect_snapshot(self, snapshot: ComponentSnapshot) -> ComponentValidation:
        """Offline format check of stored artifacts. Never touches the live backend."""
        return ComponentValidation(
            component=self.name,
            status=ValidationStatus.VALID,
            details="Artifact present",
            metadata={"size": len(snapshot.primary)},
        )

    async def close(self) -> None:
        """Release connections held by the backend."""


async def check_readiness(
    backends: Mapping[Component, ComponentBackend],
    components: Iterable[Component],
    stage: str,
) -> None:
    """Health-check the backends of ``components`` concurrently.

    Raises:
        BackupOperationError: ``DEPENDENCY_UNAVAILABLE`` naming the first
            component that has no backend, reports unhealthy or raises
    """
    components = list(dict.fromkeys(components))
    for component in components:
        if component not in backends:
            raise BackupOperationError(
                f"No backend configured for {component.value}",
                ErrorCode.DEPENDENCY_UNAVAILABLE,
                component=component.value,
                stage=stage,
            )

    results = await asyncio.gather(
        *(backends[c].health_check() for c in components),
        return_exceptions=True,
    )
    for component, result in zip(components, results):
        if result and not isinstance(result, BaseException):
            continue
        cause = result if isinstance(result, BaseException) else None
        raise BackupOperationError(
            f"{component.value} is unavailable" + (f": {cause}" if cause else ""),
            ErrorCode.DEPENDENCY_UNAVAILABLE,
            component=component.value,
            stage=stage,
            cause=cause,
        )
