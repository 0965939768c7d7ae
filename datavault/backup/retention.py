"""Retention policy enforcement: prune old backups and their artifacts."""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from .._storage.registry import StorageProviderRegistry
from .._utils import logger, utc_now
from ..config import RetentionPolicyConfig
from ..metadata.base import MetadataStore
from ..models import BackupRecord, RetentionReport
from .utils import list_backup_artifacts


def select_for_deletion(
    records: Sequence[BackupRecord],
    policy: RetentionPolicyConfig,
    now: datetime,
) -> Dict[str, str]:
    """Map backup id -> rule that removes it.

    ``records`` must be ordered newest-first. Each rule only looks at records
    the previous rules kept, so age, count and size compose.
    """
    marked: Dict[str, str] = {}

    if policy.max_age_days and policy.max_age_days > 0:
        cutoff = now - timedelta(days=policy.max_age_days)
        for record in records:
            if record.metadata.timestamp < cutoff:
                marked[record.backup_id] = "age"

    if policy.max_entries and policy.max_entries > 0:
        remaining = [r for r in records if r.backup_id not in marked]
        for record in remaining[policy.max_entries:]:
            marked[record.backup_id] = "count"

    if policy.max_total_size_bytes and policy.max_total_size_bytes > 0:
        total = 0
        over_budget = False
        for record in [r for r in records if r.backup_id not in marked]:
            # Once over budget, every colder record goes too
            if over_budget or total + record.metadata.size > policy.max_total_size_bytes:
                over_budget = True
                marked[record.backup_id] = "size"
            else:
                total += record.metadata.size

    return marked


class RetentionEnforcer:
    """Apply a :class:`RetentionPolicyConfig` to the metadata store and storage."""

    def __init__(
        self,
        metadata_store: MetadataStore,
        registry: StorageProviderRegistry,
        policy: Optional[RetentionPolicyConfig] = None,
    ):
        self.metadata_store = metadata_store
        self.registry = registry
        self.policy = policy

    async def enforce_retention_policy(self, now: Optional[datetime] = None) -> RetentionReport:
        """Delete backups selected by the policy.

        Artifact deletion failures are logged and reported; the metadata rows
        are deleted regardless.
        """
        if self.policy is None or not self.policy.is_active:
            return RetentionReport()

        records = await self.metadata_store.list()
        marked = select_for_deletion(records, self.policy, now or utc_now())
        report = RetentionReport(retained=len(records) - len(marked))
        if not marked:
            return report

        doomed = [r for r in records if r.backup_id in marked]
        if self.policy.delete_artifacts:
            for record in doomed:
                report.artifact_errors.extend(await self._delete_artifacts(record))

        await self.metadata_store.delete([r.backup_id for r in doomed])

        report.deleted = [r.backup_id for r in doomed]
        report.reasons = marked
        logger.info(f"Retention removed {len(doomed)} backups: {report.deleted}")
        return report

    async def _delete_artifacts(self, record: BackupRecord) -> List[str]:
        backup_id = record.backup_id
        errors: List[str] = []

        try:
            context = await self.registry.resolve_for_record(record.storage_provider_id, record.destination)
            paths = await list_backup_artifacts(context.provider, backup_id)
        except Exception as e:
            logger.warning(f"Retention: cannot list artifacts of {backup_id}: {e}")
            return [f"{backup_id}: {e}"]

        for path in paths:
            try:
                await context.provider.remove_file(path)
                logger.debug(f"Retention: removed {path}")
            except Exception as e:
                logger.warning(f"Retention: failed to remove {path}: {e}")
                errors.append(f"{path}: {e}")
        return errors
