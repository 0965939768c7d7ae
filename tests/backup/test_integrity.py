"""Tests for IntegrityVerifier."""

import pytest
import pytest_asyncio

from datavault.backup.integrity import IntegrityVerifier
from datavault.backup.manager import BackupOrchestrator
from datavault.models import BackupOptions


@pytest.fixture
def verifier(metadata_store, registry):
    return IntegrityVerifier(metadata_store, registry)


@pytest_asyncio.fixture
async def backup(backends, registry, metadata_store):
    """A completed backup of every fake component."""
    return await BackupOrchestrator(backends, registry, metadata_store).create_backup()


@pytest.mark.asyncio
async def test_intact_backup_passes(verifier, backup):
    result = await verifier.verify_backup_integrity(backup.id)

    assert result.passed is True
    assert result.is_valid is True
    assert result.details == "Backup integrity verified"
    assert result.metadata["checksum"] == {"expected": backup.checksum, "actual": backup.checksum}
    assert result.metadata["missing_files"] == []
    assert result.metadata["artifact_count"] == 5


@pytest.mark.asyncio
async def test_compressed_backup_passes(verifier, backends, registry, metadata_store):
    backup = await BackupOrchestrator(backends, registry, metadata_store).create_backup(
        BackupOptions(compression=True)
    )
    result = await verifier.verify_backup_integrity(backup.id)

    assert result.passed is True
    assert result.metadata["unexpected_files"] == []


@pytest.mark.asyncio
async def test_modified_artifact_fails_checksum(verifier, backup, local_provider):
    await local_provider.write_file(f"{backup.id}_postgres.json", b'{"tampered": true}')

    result = await verifier.verify_backup_integrity(backup.id)

    assert result.passed is False
    assert result.is_valid is True
    assert "Checksum mismatch" in result.details
    assert result.metadata["checksum"]["expected"] == backup.checksum
    assert result.metadata["checksum"]["actual"] != backup.checksum


@pytest.mark.asyncio
async def test_missing_primary_artifact(verifier, backup, local_provider):
    missing = f"{backup.id}_falkordb.dump"
    await local_provider.remove_file(missing)

    result = await verifier.verify_backup_integrity(backup.id)

    assert result.passed is False
    assert result.is_valid is False
    assert result.metadata["missing_files"] == [missing]
    assert missing in result.details


@pytest.mark.asyncio
async def test_missing_manifest_sub_artifact(verifier, backup, local_provider):
    missing = f"{backup.id}/qdrant/docs.snapshot"
    await local_provider.remove_file(missing)

    result = await verifier.verify_backup_integrity(backup.id)

    assert result.is_valid is False
    assert result.metadata["missing_files"] == [missing]


@pytest.mark.asyncio
async def test_extra_file_is_reported(verifier, backup, local_provider):
    extra = f"{backup.id}_notes.txt"
    await local_provider.write_file(extra, b"added later")

    result = await verifier.verify_backup_integrity(backup.id)

    assert result.is_valid is True
    assert result.passed is False
    assert result.metadata["unexpected_files"] == [extra]


@pytest.mark.asyncio
async def test_unknown_backup(verifier):
    result = await verifier.verify_backup_integrity("backup_missing")

    assert result.passed is False
    assert result.is_valid is False
    assert "not found" in result.details


@pytest.mark.asyncio
async def test_unknown_storage_provider_reported(verifier, backup):
    result = await verifier.verify_backup_integrity(backup.id, storage_provider_id="nope")

    assert result.passed is False
    assert "Integrity verification failed" in result.details
