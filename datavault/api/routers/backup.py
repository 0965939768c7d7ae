"""Backup, restore and retention API endpoints."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status

from ...models import (
    BackupMetadata,
    BackupOptions,
    BackupRecord,
    IntegrityResult,
    RestoreOptions,
    RestorePreviewToken,
    RestoreResult,
    RetentionReport,
)
from ...service import BackupService
from ..dependencies import get_backup_service
from ..models import ApproveRestoreRequest

router = APIRouter(tags=["backup"])


@router.post("/backups", response_model=BackupMetadata, status_code=status.HTTP_201_CREATED)
async def create_backup(
    options: Optional[BackupOptions] = None,
    service: BackupService = Depends(get_backup_service),
) -> BackupMetadata:
    """Create a backup and return its finalized metadata."""
    return await service.create_backup(options or BackupOptions())


@router.get("/backups", response_model=List[BackupMetadata])
async def list_backups(
    destination: Optional[str] = None,
    service: BackupService = Depends(get_backup_service),
) -> List[BackupMetadata]:
    """List backups, newest first."""
    return await service.list_backups(destination)


@router.get("/backups/{backup_id}", response_model=BackupRecord)
async def get_backup(
    backup_id: str,
    service: BackupService = Depends(get_backup_service),
) -> BackupRecord:
    return await service.get_backup(backup_id)


@router.get("/backups/{backup_id}/verify", response_model=IntegrityResult)
async def verify_backup(
    backup_id: str,
    storage_provider_id: Optional[str] = None,
    service: BackupService = Depends(get_backup_service),
) -> IntegrityResult:
    return await service.verify_backup_integrity(backup_id, storage_provider_id=storage_provider_id)


@router.post("/backups/{backup_id}/restore", response_model=RestoreResult)
async def restore_backup(
    backup_id: str,
    options: Optional[RestoreOptions] = None,
    service: BackupService = Depends(get_backup_service),
) -> RestoreResult:
    """Preview a restore (no token) or apply it (token from a preview)."""
    return await service.restore_backup(backup_id, options or RestoreOptions())


@router.post("/restore/approve", response_model=RestorePreviewToken)
async def approve_restore(
    request: ApproveRestoreRequest,
    service: BackupService = Depends(get_backup_service),
) -> RestorePreviewToken:
    return await service.approve_restore(request.token, request.approved_by, request.reason)


@router.post("/retention/enforce", response_model=RetentionReport)
async def enforce_retention(
    service: BackupService = Depends(get_backup_service),
) -> RetentionReport:
    return await service.enforce_retention_policy()


@router.get("/metrics")
async def get_metrics(service: BackupService = Depends(get_backup_service)) -> Dict[str, Any]:
    """Backup, restore and approval outcome counters and timings for this process."""
    return service.get_metrics()
