"""File request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from pydantic import field_validator
from app.schemas.base import CamelModel, Envelope
from app.schemas.case import CaseResponse


class StagedFile(CamelModel):
    """An uploaded file sitting in staging (or directly in a case folder)."""
    id: uuid.UUID
    name: str
    staging_path: str
    relative_path: str = ""
    folder_path: str = ""
    size: int
    mime_type: str = "application/octet-stream"
    uploaded_at: Optional[datetime] = None

    @field_validator("relative_path", "folder_path", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v if v is not None else ""


class UploadManifestEntry(CamelModel):
    """Per-file upload metadata, aligned by position with the multipart files."""
    relative_path: str = ""


class UploadResponse(Envelope):
    count: int
    data: list[StagedFile]
    folder_structure: dict = {}


class AssociateRequest(CamelModel):
    files: list[StagedFile]
    folder_structure: Optional[dict] = None


class AppliedFileOut(CamelModel):
    id: uuid.UUID
    path: str
    moved: bool
    cleanup: str


class SkippedFileOut(CamelModel):
    id: uuid.UUID
    name: str
    reason: str


class AssociateResponse(Envelope):
    data: CaseResponse
    applied: list[AppliedFileOut] = []
    skipped: list[SkippedFileOut] = []
