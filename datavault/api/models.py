"""Request models for the backup API."""

from typing import Optional

from pydantic import BaseModel, Field


class ApproveRestoreRequest(BaseModel):
    token: str = Field(..., min_length=1)
    approved_by: str = Field(..., min_length=1)
    reason: Optional[str] = None
