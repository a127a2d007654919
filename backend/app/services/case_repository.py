"""Case persistence used by the file pipeline."""
import uuid
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.errors import AuthorizationError, NotFoundError
from app.models.case import Case
from app.models.case_file import CaseFile


class CaseRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, case_id: uuid.UUID) -> Case | None:
        """Always hits the database, never the session's identity map."""
        result = await self.db.execute(
            select(Case)
            .where(Case.id == case_id)
            .options(selectinload(Case.files))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_owned_by(self, case_id: uuid.UUID, owner_id: str) -> Case | None:
        case = await self.find_by_id(case_id)
        if case is None or not case.owned_by(owner_id):
            return None
        return case

    async def get_owned(self, case_id: uuid.UUID, owner_id: str, hide_foreign: bool = False) -> Case:
        """Load a case the principal owns.

        A foreign case raises AuthorizationError, or NotFoundError when
        ``hide_foreign`` is set so its existence is not disclosed.
        """
        case = await self.find_by_id(case_id)
        if case is None:
            raise NotFoundError(f"Case not found with id {case_id}")
        if not case.owned_by(owner_id):
            if hide_foreign:
                raise NotFoundError(f"Case not found with id {case_id}")
            raise AuthorizationError(f"Not authorized to modify case {case_id}")
        return case

    async def set_folder_name_if_absent(self, case_id: uuid.UUID, folder_name: str) -> bool:
        """Conditional write. Returns False when another writer got there first."""
        result = await self.db.execute(
            update(Case)
            .where(Case.id == case_id, Case.folder_name.is_(None))
            .values(folder_name=folder_name)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def existing_file_ids(self, file_ids: Iterable[uuid.UUID]) -> set[uuid.UUID]:
        """Ids already recorded on any case. File ids are unique across cases."""
        ids = list(file_ids)
        if not ids:
            return set()
        result = await self.db.execute(
            select(CaseFile.id).where(CaseFile.id.in_(ids))
        )
        return set(result.scalars().all())

    async def find_file(self, case_id: uuid.UUID, file_id: uuid.UUID) -> CaseFile | None:
        result = await self.db.execute(
            select(CaseFile).where(CaseFile.id == file_id, CaseFile.case_id == case_id)
        )
        return result.scalar_one_or_none()

    def add_files(self, case: Case, records: Iterable[CaseFile]) -> None:
        """Append file rows; each is its own INSERT, so concurrent appends never clobber."""
        for record in records:
            record.case = case
            self.db.add(record)

    async def save(self) -> None:
        await self.db.commit()

    async def reload(self, case_id: uuid.UUID) -> Case:
        case = await self.find_by_id(case_id)
        if case is None:
            raise NotFoundError(f"Case not found with id {case_id}")
        return case
