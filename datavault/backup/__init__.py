"""Backup creation, integrity verification and retention."""

from .integrity import IntegrityVerifier
from .manager import BackupOrchestrator
from .retention import RetentionEnforcer, select_for_deletion

__all__ = ["BackupOrchestrator", "IntegrityVerifier", "RetentionEnforcer", "select_for_deletion"]
