"""Staging writer: persists an upload batch to disk and validates it.

A batch is all-or-nothing. Every file is written, read back and checked
against its format signature; if any file fails, everything this batch
wrote is deleted again and the whole batch is rejected.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import StorageError, ValidationError
from app.schemas.file import StagedFile
from app.services.case_folders import CaseFolderManager
from app.services.case_repository import CaseRepository
from app.services.file_storage import FileStorageService
from app.services.folder_structure import (
    merge_folder_structure,
    resolve_folder_structure,
    split_relative_path,
)
from app.services.signature import is_signature_exempt, read_header, validate_signature

logger = logging.getLogger(__name__)


@dataclass
class IncomingUpload:
    """One file of a multipart upload, already read into memory."""
    filename: str
    data: bytes
    content_type: str | None = None
    relative_path: str = ""


@dataclass
class StagingResult:
    files: list[StagedFile] = field(default_factory=list)
    folder_structure: dict = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.files)


class StagingWriter:
    def __init__(
        self,
        storage: FileStorageService,
        folders: CaseFolderManager | None = None,
        max_size_bytes: int | None = None,
    ):
        self.storage = storage
        self.folders = folders or CaseFolderManager(storage)
        self.max_size_bytes = max_size_bytes

    async def stage(
        self,
        db: AsyncSession,
        uploads: list[IncomingUpload],
        owner_id: str,
        case_id: uuid.UUID | None = None,
        client_structure: dict | None = None,
    ) -> StagingResult:
        """Write ``uploads`` to staging, or straight into the case folder when ``case_id`` is given."""
        if not uploads:
            raise ValidationError("Please upload at least one file")

        prepared = [(upload, self._check_upload(upload)) for upload in uploads]
        target_segments, prune_stop = await self._resolve_target(db, owner_id, case_id)

        written: list[Path] = []
        staged: list[StagedFile] = []
        invalid: list[str] = []
        try:
            for upload, segments in prepared:
                folders = segments[:-1]
                directory = await self.storage.ensure_directory(
                    self.storage.base_path, [*target_segments, *folders]
                )
                path = await self.storage.save(
                    upload.data, directory, self.storage.unique_name(upload.filename)
                )
                written.append(path)

                if not is_signature_exempt(upload.filename):
                    header = await read_header(path)
                    if not validate_signature(upload.filename, header):
                        invalid.append(upload.filename)
                        continue

                staged.append(StagedFile(
                    id=uuid.uuid4(),
                    name=upload.filename,
                    staging_path=self.storage.relative(path),
                    relative_path="/".join(segments),
                    folder_path="/".join(folders),
                    size=len(upload.data),
                    mime_type=upload.content_type or "application/octet-stream",
                    uploaded_at=datetime.now(timezone.utc),
                ))
        except Exception:
            await self._discard(written, prune_stop)
            raise

        if invalid:
            await self._discard(written, prune_stop)
            logger.warning(
                "Rejected upload batch of %d file(s), invalid signature: %s",
                len(uploads), ", ".join(invalid),
            )
            raise ValidationError(
                f"Invalid file signature: {', '.join(invalid)}. "
                "Only DICOM, JPEG and PNG files are accepted"
            )

        structure = resolve_folder_structure(staged)
        if client_structure:
            structure = merge_folder_structure(client_structure, structure)

        logger.info(
            "Staged %d file(s) under %s",
            len(staged), "/".join(target_segments),
        )
        return StagingResult(files=staged, folder_structure=structure)

    def _check_upload(self, upload: IncomingUpload) -> list[str]:
        """Reject unusable uploads before anything touches the disk."""
        if not upload.filename or not Path(upload.filename).name:
            raise ValidationError("Every uploaded file needs a name")
        if not upload.data:
            raise ValidationError(f"File {upload.filename} is empty")
        if self.max_size_bytes and len(upload.data) > self.max_size_bytes:
            raise ValidationError(
                f"File {upload.filename} exceeds the {self.max_size_bytes} byte limit"
            )
        return split_relative_path(upload.relative_path)

    async def _resolve_target(
        self, db: AsyncSession, owner_id: str, case_id: uuid.UUID | None
    ) -> tuple[list[str], Path]:
        """Directory segments (under the root) to write into, and where pruning must stop."""
        if case_id is None:
            batch = self.storage.new_batch_name()
            return [self.storage.staging_dir_name, batch], self.storage.staging_root

        await CaseRepository(db).get_owned(case_id, owner_id)
        folder_name = await self.folders.ensure_folder(db, case_id)
        return [folder_name], self.storage.case_dir(folder_name)

    async def _discard(self, written: list[Path], stop: Path) -> None:
        for path in written:
            try:
                await self.storage.delete(path)
            except StorageError as e:
                logger.error("Could not delete rejected upload %s: %s", path, e)
        for parent in {p.parent for p in written}:
            await self.storage.remove_empty_dirs(parent, stop)
