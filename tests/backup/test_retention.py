"""Tests for retention policy enforcement."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from datavault.backup.retention import RetentionEnforcer, select_for_deletion
from datavault.config import RetentionPolicyConfig
from datavault.models import BackupMetadata, BackupRecord, BackupStatus

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_record(backup_id: str, days_old: float, size: int = 100, destination=None) -> BackupRecord:
    return BackupRecord(
        metadata=BackupMetadata(
            id=backup_id,
            timestamp=NOW - timedelta(days=days_old),
            size=size,
            components={"config": True},
            status=BackupStatus.COMPLETED,
        ),
        storage_provider_id="local",
        destination=destination,
    )


async def store_backup(metadata_store, provider, record: BackupRecord) -> None:
    await metadata_store.upsert(record)
    await provider.write_file(f"{record.backup_id}_config.json", b"{}")
    await provider.write_file(f"{record.backup_id}/qdrant/docs.snapshot", b"snap")


class TestSelectForDeletion:
    """Rule composition on a newest-first record list."""

    def test_age(self):
        records = [make_record("b1", 1), make_record("b2", 31), make_record("b3", 45)]
        marked = select_for_deletion(records, RetentionPolicyConfig(max_age_days=30), NOW)
        assert marked == {"b2": "age", "b3": "age"}

    def test_count(self):
        records = [make_record(f"b{i}", i) for i in range(5)]
        marked = select_for_deletion(records, RetentionPolicyConfig(max_entries=3), NOW)
        assert marked == {"b3": "count", "b4": "count"}

    def test_count_applies_to_records_left_by_age(self):
        records = [make_record("b1", 1), make_record("b2", 2), make_record("b3", 40), make_record("b4", 50)]
        marked = select_for_deletion(records, RetentionPolicyConfig(max_age_days=30, max_entries=1), NOW)
        assert marked == {"b2": "count", "b3": "age", "b4": "age"}

    def test_size_marks_crossing_record_and_colder(self):
        records = [
            make_record("b1", 1, size=40),
            make_record("b2", 2, size=40),
            make_record("b3", 3, size=40),
            make_record("b4", 4, size=10),
        ]
        marked = select_for_deletion(records, RetentionPolicyConfig(max_total_size_bytes=100), NOW)
        assert marked == {"b3": "size", "b4": "size"}

    def test_size_budget_exactly_met(self):
        records = [make_record("b1", 1, size=50), make_record("b2", 2, size=50)]
        assert select_for_deletion(records, RetentionPolicyConfig(max_total_size_bytes=100), NOW) == {}

    def test_inactive_rules(self):
        records = [make_record(f"b{i}", i * 100) for i in range(5)]
        policy = RetentionPolicyConfig(max_age_days=0, max_entries=0, max_total_size_bytes=0)
        assert select_for_deletion(records, policy, NOW) == {}


@pytest.mark.asyncio
async def test_count_rule_keeps_three_newest(metadata_store, registry, local_provider):
    for i in range(5):
        await store_backup(metadata_store, local_provider, make_record(f"backup_{i}", days_old=i))

    enforcer = RetentionEnforcer(metadata_store, registry, RetentionPolicyConfig(max_entries=3))
    report = await enforcer.enforce_retention_policy(now=NOW)

    assert [r.backup_id for r in await metadata_store.list()] == ["backup_0", "backup_1", "backup_2"]
    assert sorted(report.deleted) == ["backup_3", "backup_4"]
    assert report.retained == 3
    assert report.artifact_errors == []
    assert sorted(await local_provider.list_files()) == sorted(
        f"backup_{i}{suffix}" for i in range(3) for suffix in ("_config.json", "/qdrant/docs.snapshot")
    )


@pytest.mark.asyncio
async def test_aged_out_backup_removed_with_artifacts(metadata_store, registry, local_provider):
    await store_backup(metadata_store, local_provider, make_record("backup_old", days_old=40))
    await store_backup(metadata_store, local_provider, make_record("backup_new", days_old=1))

    enforcer = RetentionEnforcer(metadata_store, registry, RetentionPolicyConfig(max_age_days=30))
    report = await enforcer.enforce_retention_policy(now=NOW)

    assert report.reasons == {"backup_old": "age"}
    assert [r.backup_id for r in await metadata_store.list()] == ["backup_new"]
    remaining = await local_provider.list_files()
    assert not any(p.startswith("backup_old") for p in remaining)


@pytest.mark.asyncio
async def test_keep_artifacts_when_disabled(metadata_store, registry, local_provider):
    await store_backup(metadata_store, local_provider, make_record("backup_old", days_old=40))

    policy = RetentionPolicyConfig(max_age_days=30, delete_artifacts=False)
    await RetentionEnforcer(metadata_store, registry, policy).enforce_retention_policy(now=NOW)

    assert await metadata_store.list() == []
    assert await local_provider.exists("backup_old_config.json")


@pytest.mark.asyncio
async def test_artifact_errors_do_not_block_metadata_cleanup(metadata_store, registry, local_provider):
    await store_backup(metadata_store, local_provider, make_record("backup_old", days_old=40))
    local_provider.remove_file = AsyncMock(side_effect=PermissionError("read-only"))

    report = await RetentionEnforcer(
        metadata_store, registry, RetentionPolicyConfig(max_age_days=30)
    ).enforce_retention_policy(now=NOW)

    assert report.deleted == ["backup_old"]
    assert len(report.artifact_errors) == 2
    assert await metadata_store.list() == []


@pytest.mark.asyncio
async def test_unresolvable_provider_is_reported(metadata_store, registry):
    record = make_record("backup_remote", days_old=40, destination="s3://gone/")
    record.storage_provider_id = "archive"
    await metadata_store.upsert(record)

    report = await RetentionEnforcer(
        metadata_store, registry, RetentionPolicyConfig(max_age_days=30)
    ).enforce_retention_policy(now=NOW)

    assert report.deleted == ["backup_remote"]
    assert report.artifact_errors and report.artifact_errors[0].startswith("backup_remote:")


@pytest.mark.asyncio
async def test_no_policy_is_a_noop(metadata_store, registry, local_provider):
    await store_backup(metadata_store, local_provider, make_record("backup_old", days_old=400))

    report = await RetentionEnforcer(metadata_store, registry, None).enforce_retention_policy(now=NOW)

    assert report.deleted == []
    assert len(await metadata_store.list()) == 1
