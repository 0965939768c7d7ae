"""Outcome counters and timings for backup, restore and approval operations."""

from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, List, Optional

from ._utils import logger, utc_now

# Recent operations kept for inspection
MAX_RECENT_EVENTS = 200


@dataclass
class OperationEvent:
    operation: str
    status: str
    duration_seconds: Optional[float] = None
    labels: Dict[str, Any] = field(default_factory=dict)
    recorded_at: str = field(default_factory=lambda: utc_now().isoformat())


class OperationMetrics:
    """In-process recorder for operation outcomes.

    Counters are keyed ``<operation>.<status>`` (``backup.success``,
    ``restore.apply.failure``, ``restore_approval.approved``). Subclasses can
    forward :meth:`record` to an external metrics system.
    """

    def __init__(self, max_recent: int = MAX_RECENT_EVENTS):
        self.counters: Counter = Counter()
        self.durations: Dict[str, List[float]] = {}
        self.backup_bytes = 0
        self.recent: Deque[OperationEvent] = deque(maxlen=max_recent)

    def record(self, event: OperationEvent) -> None:
        self.counters[f"{event.operation}.{event.status}"] += 1
        if event.duration_seconds is not None:
            self.durations.setdefault(event.operation, []).append(event.duration_seconds)
        self.recent.append(event)
        logger.debug(f"Recorded {event.operation} {event.status}: {event.labels}")

    def record_backup(
        self,
        status: str,
        duration_seconds: float,
        backup_type: str,
        storage_provider_id: Optional[str],
        size_bytes: Optional[int] = None,
    ) -> None:
        if size_bytes:
            self.backup_bytes += size_bytes
        self.record(OperationEvent(
            operation="backup",
            status=status,
            duration_seconds=duration_seconds,
            labels={"type": backup_type, "storage_provider_id": storage_provider_id, "size_bytes": size_bytes},
        ))

    def record_restore(
        self,
        mode: str,
        status: str,
        duration_seconds: float,
        requires_approval: bool,
        storage_provider_id: Optional[str],
        backup_id: str,
    ) -> None:
        self.record(OperationEvent(
            operation=f"restore.{mode}",
            status=status,
            duration_seconds=duration_seconds,
            labels={
                "requires_approval": requires_approval,
                "storage_provider_id": storage_provider_id,
                "backup_id": backup_id,
            },
        ))

    def record_restore_approval(self, status: str, backup_id: Optional[str] = None) -> None:
        self.record(OperationEvent(operation="restore_approval", status=status, labels={"backup_id": backup_id}))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "durations": {
                operation: {
                    "count": len(values),
                    "total_seconds": round(sum(values), 6),
                    "max_seconds": round(max(values), 6),
                }
                for operation, values in self.durations.items()
            },
            "backup_bytes": self.backup_bytes,
            "recent": [asdict(event) for event in self.recent],
        }
