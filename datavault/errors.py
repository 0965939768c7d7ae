"""Error taxonomy for backup, restore and retention operations."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"
    STORAGE_PROVIDER_UNKNOWN = "STORAGE_PROVIDER_UNKNOWN"
    STORAGE_PROVIDER_CONFIG_INVALID = "STORAGE_PROVIDER_CONFIG_INVALID"
    BACKUP_FALKORDB_FAILED = "BACKUP_FALKORDB_FAILED"
    BACKUP_QDRANT_FAILED = "BACKUP_QDRANT_FAILED"
    BACKUP_POSTGRES_FAILED = "BACKUP_POSTGRES_FAILED"
    BACKUP_CONFIG_FAILED = "BACKUP_CONFIG_FAILED"
    BACKUP_COMPRESSION_FAILED = "BACKUP_COMPRESSION_FAILED"
    BACKUP_FAILED = "BACKUP_FAILED"
    BACKUP_METADATA_NOT_FOUND = "BACKUP_METADATA_NOT_FOUND"
    RESTORE_TOKEN_REQUIRED = "RESTORE_TOKEN_REQUIRED"
    RESTORE_TOKEN_INVALID = "RESTORE_TOKEN_INVALID"
    RESTORE_TOKEN_EXPIRED = "RESTORE_TOKEN_EXPIRED"
    RESTORE_VALIDATION_FAILED = "RESTORE_VALIDATION_FAILED"
    RESTORE_APPROVAL_REQUIRED = "RESTORE_APPROVAL_REQUIRED"
    RESTORE_INTEGRITY_FAILED = "RESTORE_INTEGRITY_FAILED"
    RESTORE_FAILED = "RESTORE_FAILED"

    @classmethod
    def backup_failed_for(cls, component: str) -> "ErrorCode":
        """``BACKUP_<COMPONENT>_FAILED`` for a component key, ``BACKUP_FAILED`` otherwise."""
        try:
            return cls(f"BACKUP_{component.upper()}_FAILED")
        except ValueError:
            return cls.BACKUP_FAILED


DEFAULT_STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.DEPENDENCY_UNAVAILABLE: 503,
    ErrorCode.STORAGE_PROVIDER_UNKNOWN: 400,
    ErrorCode.STORAGE_PROVIDER_CONFIG_INVALID: 400,
    ErrorCode.BACKUP_METADATA_NOT_FOUND: 404,
    ErrorCode.RESTORE_TOKEN_REQUIRED: 400,
    ErrorCode.RESTORE_TOKEN_INVALID: 404,
    ErrorCode.RESTORE_TOKEN_EXPIRED: 410,
    ErrorCode.RESTORE_VALIDATION_FAILED: 409,
    ErrorCode.RESTORE_APPROVAL_REQUIRED: 403,
    ErrorCode.RESTORE_INTEGRITY_FAILED: 412,
}


class BackupOperationError(Exception):
    """Single error type for every backup/restore failure.

    Callers match on ``code`` rather than on subclasses. ``status_code``
    defaults from the code (500 when the code has no specific status).
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        status_code: Optional[int] = None,
        component: Optional[str] = None,
        stage: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code)
        self.status_code = status_code if status_code is not None else DEFAULT_STATUS_CODES.get(self.code, 500)
        self.component = component
        self.stage = stage
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "message": self.message,
            "code": self.code.value,
            "statusCode": self.status_code,
        }
        if self.component:
            payload["component"] = self.component
        if self.stage:
            payload["stage"] = self.stage
        if self.cause is not None:
            payload["cause"] = str(self.cause)
        return payload

    def __repr__(self) -> str:
        return f"BackupOperationError(code={self.code.value!r}, message={self.message!r})"
