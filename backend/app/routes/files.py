"""Files API routes: staging uploads, associating them with cases, removal."""
import json
from typing import Optional
from uuid import UUID

import pydantic
from fastapi import APIRouter, Depends, Form, UploadFile, File as FastAPIFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_owner_id, get_storage
from app.errors import NotFoundError, ValidationError
from app.schemas.case import CaseEnvelope, CaseResponse
from app.schemas.file import (
    AppliedFileOut,
    AssociateRequest,
    AssociateResponse,
    SkippedFileOut,
    UploadManifestEntry,
    UploadResponse,
)
from app.services.case_repository import CaseRepository
from app.services.file_storage import FileStorageService
from app.services.reconciler import CaseFileReconciler
from app.services.staging import IncomingUpload, StagingWriter

router = APIRouter(prefix="/api/v1/files", tags=["files"])

_manifest_adapter = pydantic.TypeAdapter(list[UploadManifestEntry])


@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: list[UploadFile] = FastAPIFile(...),
    manifest: Optional[str] = Form(None),
    folder_structure: Optional[str] = Form(None, alias="folderStructure"),
    case_id: Optional[UUID] = Form(None, alias="caseId"),
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
    storage: FileStorageService = Depends(get_storage),
):
    """Stage a batch of files. Rejected as a whole if any file fails validation."""
    entries = _parse_manifest(manifest, len(files))
    uploads = []
    for upload, entry in zip(files, entries):
        uploads.append(IncomingUpload(
            filename=upload.filename or "",
            data=await upload.read(),
            content_type=upload.content_type,
            relative_path=entry.relative_path,
        ))

    writer = StagingWriter(storage, max_size_bytes=settings.MAX_UPLOAD_SIZE_BYTES)
    result = await writer.stage(
        db, uploads, owner_id,
        case_id=case_id,
        client_structure=_parse_structure(folder_structure),
    )
    return UploadResponse(
        count=result.count,
        data=result.files,
        folder_structure=result.folder_structure,
    )


@router.post("/associate/{case_id}", response_model=AssociateResponse)
async def associate_files(
    case_id: UUID,
    body: AssociateRequest,
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
    storage: FileStorageService = Depends(get_storage),
):
    """Move staged files into the case folder and add them to the case."""
    reconciler = CaseFileReconciler(storage)
    result = await reconciler.associate(
        db, case_id, owner_id, body.files, folder_structure=body.folder_structure
    )
    return AssociateResponse(
        data=CaseResponse.model_validate(result.case),
        applied=[
            AppliedFileOut(id=m.file_id, path=m.path, moved=m.moved, cleanup=m.cleanup.status.value)
            for m in result.applied
        ],
        skipped=[
            SkippedFileOut(id=s.file_id, name=s.name, reason=s.reason)
            for s in result.skipped
        ],
    )


@router.delete("/remove/{case_id}/{file_id}", response_model=CaseEnvelope)
async def remove_file(
    case_id: UUID,
    file_id: UUID,
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
    storage: FileStorageService = Depends(get_storage),
):
    """Remove a file from a case and delete it from disk."""
    case = await CaseFileReconciler(storage).remove(db, case_id, file_id, owner_id)
    return CaseEnvelope(data=CaseResponse.model_validate(case))


@router.get("/{case_id}/{file_id}/download")
async def download_file(
    case_id: UUID,
    file_id: UUID,
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
    storage: FileStorageService = Depends(get_storage),
):
    """Download a file associated with a case."""
    repo = CaseRepository(db)
    await repo.get_owned(case_id, owner_id, hide_foreign=True)
    record = await repo.find_file(case_id, file_id)
    if record is None:
        raise NotFoundError(f"File not found with id {file_id}")

    path = storage.resolve(record.path)
    if not await storage.exists(path):
        raise NotFoundError("File missing on disk")

    return FileResponse(
        path=path,
        filename=record.name,
        media_type=record.mime_type or "application/octet-stream",
    )


def _parse_manifest(raw: Optional[str], file_count: int) -> list[UploadManifestEntry]:
    """Per-file metadata. Missing manifest means no file carries a folder path."""
    if not raw:
        return [UploadManifestEntry() for _ in range(file_count)]
    try:
        entries = _manifest_adapter.validate_json(raw)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid upload manifest: {e.errors()[0]['msg']}") from e
    if len(entries) != file_count:
        raise ValidationError(
            f"Upload manifest has {len(entries)} entries for {file_count} files"
        )
    return entries


def _parse_structure(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError("folderStructure must be valid JSON") from e
    if not isinstance(parsed, dict):
        raise ValidationError("folderStructure must be a JSON object")
    return parsed
