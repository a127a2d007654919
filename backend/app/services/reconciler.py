"""Binding staged files to cases, and unbinding them again.

Association is lenient: a file that cannot be placed is skipped and
reported, the rest of the batch still goes through. Files that were moved
but whose records failed to commit are logged for manual reconciliation.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, NotFoundError, StorageError, ValidationError
from app.models.case import Case
from app.models.case_file import CaseFile
from app.schemas.file import StagedFile
from app.services.case_folders import CaseFolderManager
from app.services.case_repository import CaseRepository
from app.services.file_storage import CleanupResult, CleanupStatus, FileStorageService
from app.services.folder_structure import (
    merge_folder_structure,
    parent_folder,
    split_relative_path,
)

logger = logging.getLogger(__name__)

SKIP_DUPLICATE = "duplicate"
SKIP_INVALID_PATH = "invalid_path"
SKIP_MISSING_SOURCE = "missing_source"
SKIP_MOVE_FAILED = "move_failed"


@dataclass
class MoveResult:
    """A file placed in its case folder. ``method`` is None when it was already there."""
    file_id: uuid.UUID
    path: str
    method: str | None
    cleanup: CleanupResult
    size: int

    @property
    def moved(self) -> bool:
        return self.method is not None


@dataclass
class SkippedFile:
    file_id: uuid.UUID
    name: str
    reason: str


@dataclass
class AssociationResult:
    case: Case
    applied: list[MoveResult] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)


class CaseFileReconciler:
    def __init__(self, storage: FileStorageService, folders: CaseFolderManager | None = None):
        self.storage = storage
        self.folders = folders or CaseFolderManager(storage)

    async def associate(
        self,
        db: AsyncSession,
        case_id: uuid.UUID,
        owner_id: str,
        files: list[StagedFile],
        folder_structure: dict | None = None,
    ) -> AssociationResult:
        """Move staged files into the case folder and append them to the case."""
        if not files:
            raise ValidationError("Please provide file data to associate")

        repo = CaseRepository(db)
        await repo.get_owned(case_id, owner_id)
        folder_name = await self.folders.ensure_folder(db, case_id)
        case_dir = self.storage.case_dir(folder_name)

        seen = await repo.existing_file_ids(f.id for f in files)
        applied: list[MoveResult] = []
        skipped: list[SkippedFile] = []
        records: list[CaseFile] = []

        for staged in files:
            if staged.id in seen:
                skipped.append(SkippedFile(staged.id, staged.name, SKIP_DUPLICATE))
                continue
            seen.add(staged.id)

            outcome = await self._place(staged, case_dir, folder_name)
            if isinstance(outcome, SkippedFile):
                skipped.append(outcome)
                continue

            applied.append(outcome)
            records.append(CaseFile(
                id=staged.id,
                name=staged.name,
                path=outcome.path,
                relative_path=staged.relative_path,
                size=outcome.size,
                mime_type=staged.mime_type,
                uploaded_at=staged.uploaded_at or datetime.now(timezone.utc),
            ))

        case = await repo.find_by_id(case_id)
        if case is None:
            raise NotFoundError(f"Case not found with id {case_id}")
        if folder_structure:
            case.folder_structure = merge_folder_structure(case.folder_structure, folder_structure)
        repo.add_files(case, records)

        try:
            await repo.save()
        except IntegrityError as e:
            await db.rollback()
            logger.error(
                "Case %s: %d file(s) moved but not recorded, reconcile manually: %s",
                case_id, len(records), [r.path for r in records],
            )
            raise ConflictError(f"Files were associated concurrently with case {case_id}") from e

        for skip in skipped:
            logger.warning(
                "Case %s: skipped file %s (%s): %s",
                case_id, skip.file_id, skip.name, skip.reason,
            )
        logger.info(
            "Associated %d file(s) with case %s (%d skipped)",
            len(applied), case_id, len(skipped),
        )
        return AssociationResult(case=await repo.reload(case_id), applied=applied, skipped=skipped)

    async def _place(
        self, staged: StagedFile, case_dir: Path, folder_name: str
    ) -> MoveResult | SkippedFile:
        try:
            source = self.storage.resolve(staged.staging_path)
            segments = self._folder_segments(staged)
        except ValidationError:
            return SkippedFile(staged.id, staged.name, SKIP_INVALID_PATH)

        if source.is_relative_to(case_dir):
            # Staged straight into this case's folder, nothing to move
            if source.parent != case_dir.joinpath(*segments):
                return SkippedFile(staged.id, staged.name, SKIP_INVALID_PATH)
            if not await self.storage.exists(source):
                return SkippedFile(staged.id, staged.name, SKIP_MISSING_SOURCE)
            return MoveResult(
                staged.id, self.storage.relative(source), None,
                CleanupResult(CleanupStatus.SKIPPED), await self.storage.size(source),
            )

        # Only the staging area may be drained into a case
        if not self.storage.is_staged(source):
            return SkippedFile(staged.id, staged.name, SKIP_INVALID_PATH)
        if not await self.storage.exists(source):
            return SkippedFile(staged.id, staged.name, SKIP_MISSING_SOURCE)

        try:
            directory = await self.folders.ensure_directory(folder_name, segments)
            destination = directory / source.name
            if await self.storage.exists(destination):
                destination = directory / self.storage.unique_name(staged.name)
            method = await self.storage.move(source, destination)
            size = await self.storage.size(destination)
        except StorageError as e:
            logger.error("Could not move staged file %s into %s: %s", source, folder_name, e)
            return SkippedFile(staged.id, staged.name, SKIP_MOVE_FAILED)

        cleanup = await self.storage.remove_empty_dirs(source.parent, self.storage.staging_root)
        if cleanup.status is CleanupStatus.FAILED:
            logger.warning("Moved %s but staging cleanup failed: %s", staged.name, cleanup.error)
        return MoveResult(staged.id, self.storage.relative(destination), method, cleanup, size)

    @staticmethod
    def _folder_segments(staged: StagedFile) -> list[str]:
        """Destination folders under the case, taken from relativePath alone."""
        segments = split_relative_path(parent_folder(staged.relative_path))
        if staged.folder_path and split_relative_path(staged.folder_path) != segments:
            raise ValidationError(
                f"folderPath {staged.folder_path!r} does not match relativePath {staged.relative_path!r}"
            )
        return segments

    async def remove(
        self,
        db: AsyncSession,
        case_id: uuid.UUID,
        file_id: uuid.UUID,
        owner_id: str,
    ) -> Case:
        """Delete a file from disk and from the case. A file already gone from disk is fine."""
        repo = CaseRepository(db)
        case = await repo.get_owned(case_id, owner_id, hide_foreign=True)
        record = await repo.find_file(case_id, file_id)
        if record is None:
            raise NotFoundError(f"File not found with id {file_id}")

        try:
            path = self.storage.resolve(record.path)
        except ValidationError:
            logger.warning("Case %s: file %s has an unusable path %r", case_id, file_id, record.path)
            path = None

        if path is not None:
            if await self.storage.delete(path):
                if case.folder_name:
                    await self.storage.remove_empty_dirs(path.parent, self.storage.case_dir(case.folder_name))
            else:
                logger.info("Case %s: file %s was already missing on disk", case_id, file_id)

        await db.delete(record)
        await repo.save()
        logger.info("Removed file %s from case %s", file_id, case_id)
        return await repo.reload(case_id)
