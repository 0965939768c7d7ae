"""Checksum and artifact-presence verification of stored backups."""

from typing import List, Optional, Set

from .._storage.base import StorageProvider
from .._storage.registry import StorageProviderRegistry
from .._utils import logger
from ..backends.base import PRIMARY_ARTIFACTS
from ..metadata.base import MetadataStore
from ..models import BackupRecord, Component, IntegrityResult
from .utils import (
    artifact_path,
    compute_backup_checksum,
    is_bundle,
    list_backup_artifacts,
    manifest_references,
)


async def expected_artifacts(
    provider: StorageProvider,
    record: BackupRecord,
    present: Set[str],
) -> List[str]:
    """Artifacts implied by the record's component flags, sub-artifacts included."""
    backup_id = record.backup_id
    expected: List[str] = []

    for component in Component:
        if not record.metadata.components.get(component.value):
            continue
        primary = artifact_path(backup_id, PRIMARY_ARTIFACTS[component])
        expected.append(primary)
        if primary in present:
            data = await provider.read_file(primary)
            expected.extend(artifact_path(backup_id, name) for name in manifest_references(data))

    return expected


class IntegrityVerifier:
    """Recompute a backup's checksum and cross-check expected artifacts.

    ``is_valid`` means every expected artifact is present; ``passed`` further
    requires the stored bytes to hash to the recorded checksum.
    """

    def __init__(self, metadata_store: MetadataStore, registry: StorageProviderRegistry):
        self.metadata_store = metadata_store
        self.registry = registry

    async def verify_backup_integrity(
        self,
        backup_id: str,
        storage_provider_id: Optional[str] = None,
        destination: Optional[str] = None,
    ) -> IntegrityResult:
        record = await self.metadata_store.get(backup_id)
        if record is None:
            return IntegrityResult(
                passed=False,
                is_valid=False,
                details=f"Backup metadata not found for {backup_id}",
                metadata={"backup_id": backup_id},
            )

        try:
            context = await self.registry.resolve_for_record(
                record.storage_provider_id,
                record.destination,
                storage_provider_id=storage_provider_id,
                destination=destination,
            )
            return await self.verify_record(record, context.provider)
        except Exception as e:
            logger.error(f"Integrity check of {backup_id} failed: {e}")
            return IntegrityResult(
                passed=False,
                is_valid=False,
                details=f"Integrity verification failed: {e}",
                metadata={"backup_id": backup_id, "cause": str(e)},
            )

    async def verify_record(self, record: BackupRecord, provider: StorageProvider) -> IntegrityResult:
        backup_id = record.backup_id
        paths = await list_backup_artifacts(provider, backup_id)
        present = set(paths)

        expected = await expected_artifacts(provider, record, present)
        missing = [p for p in expected if p not in present]
        unexpected = sorted(p for p in present - set(expected) if not is_bundle(p))

        actual_checksum = await compute_backup_checksum(provider, paths)
        checksum_matches = actual_checksum == record.metadata.checksum

        metadata = {
            "backup_id": backup_id,
            "checksum": {"expected": record.metadata.checksum, "actual": actual_checksum},
            "missing_files": missing,
            "unexpected_files": unexpected,
            "artifact_count": len(paths),
        }

        if missing:
            details = f"Missing backup files: {', '.join(missing)}"
        elif not checksum_matches:
            details = "Checksum mismatch detected. The backup may be corrupt or modified."
        else:
            details = "Backup integrity verified"

        passed = checksum_matches and not missing
        if not passed:
            logger.warning(f"Integrity check of {backup_id}: {details}")

        return IntegrityResult(
            passed=passed,
            is_valid=not missing,
            details=details,
            metadata=metadata,
        )
