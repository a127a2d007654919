"""Stable per-case folder on disk."""
import logging
import time
import uuid
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError, StorageError
from app.services.case_repository import CaseRepository
from app.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)


def generate_folder_name(case_id: uuid.UUID, now: float | None = None) -> str:
    millis = int((time.time() if now is None else now) * 1000)
    return f"case_{case_id}_{millis}"


class CaseFolderManager:
    """Maps a case id to its folder name and makes sure the folder exists.

    The folder name is written once with a set-if-absent update, so two
    requests ensuring the same case concurrently agree on one name.
    """

    def __init__(self, storage: FileStorageService):
        self.storage = storage

    async def ensure_folder(self, db: AsyncSession, case_id: uuid.UUID) -> str:
        repo = CaseRepository(db)
        case = await repo.find_by_id(case_id)
        if case is None:
            raise NotFoundError(f"Case not found with id {case_id}")

        folder_name = case.folder_name
        if not folder_name:
            candidate = generate_folder_name(case_id)
            if await repo.set_folder_name_if_absent(case_id, candidate):
                folder_name = candidate
                logger.info("Assigned folder %s to case %s", folder_name, case_id)
            else:
                winner = await repo.find_by_id(case_id)
                if winner is None or not winner.folder_name:
                    raise StorageError(f"Could not assign a folder to case {case_id}")
                folder_name = winner.folder_name
                logger.info("Case %s folder assigned concurrently, using %s", case_id, folder_name)

        await self.storage.ensure_directory(self.storage.base_path, [folder_name])
        return folder_name

    async def ensure_directory(self, case_folder: str, segments: list[str]) -> Path:
        """Create nested ``segments`` under the case folder, returning the deepest directory."""
        return await self.storage.ensure_directory(
            self.storage.base_path, [case_folder, *segments]
        )
