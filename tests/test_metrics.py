"""Tests for operation outcome metrics."""

from datavault.metrics import OperationMetrics


def test_record_backup_counts_outcomes_and_bytes():
    metrics = OperationMetrics()

    metrics.record_backup("success", 1.5, "full", "local", size_bytes=100)
    metrics.record_backup("success", 0.5, "full", "archive", size_bytes=20)
    metrics.record_backup("failure", 0.25, "full", "local")

    snapshot = metrics.snapshot()
    assert snapshot["counters"] == {"backup.success": 2, "backup.failure": 1}
    assert snapshot["backup_bytes"] == 120
    assert snapshot["durations"]["backup"] == {"count": 3, "total_seconds": 2.25, "max_seconds": 1.5}
    assert snapshot["recent"][1]["labels"] == {"type": "full", "storage_provider_id": "archive", "size_bytes": 20}


def test_record_restore_keys_by_mode():
    metrics = OperationMetrics()

    metrics.record_restore("preview", "success", 0.1, False, "local", "backup_1")
    metrics.record_restore("apply", "failure", 0.2, True, None, "backup_1")
    metrics.record_restore_approval("approved", "backup_1")

    snapshot = metrics.snapshot()
    assert snapshot["counters"] == {
        "restore.preview.success": 1,
        "restore.apply.failure": 1,
        "restore_approval.approved": 1,
    }
    assert set(snapshot["durations"]) == {"restore.preview", "restore.apply"}
    assert snapshot["recent"][1]["labels"]["requires_approval"] is True


def test_recent_events_are_bounded():
    metrics = OperationMetrics(max_recent=2)

    for _ in range(5):
        metrics.record_restore_approval("failed")

    assert metrics.counters["restore_approval.failed"] == 5
    assert len(metrics.snapshot()["recent"]) == 2
