"""Dependency injection for FastAPI."""

from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from datavault.service import BackupService


async def get_backup_service(request: Request) -> "BackupService":
    """Get BackupService instance from app state."""
    return request.app.state.backup_service
