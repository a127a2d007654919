"""Cases API routes. Every case is scoped to the requesting user."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_owner_id, get_storage
from app.errors import ConflictError
from app.models.case import Case
from app.schemas.case import (
    CaseCreate,
    CaseEnvelope,
    CaseListEnvelope,
    CaseResponse,
    CaseUpdate,
)
from app.services.case_repository import CaseRepository
from app.services.file_storage import FileStorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/cases", tags=["cases"])


@router.post("", response_model=CaseEnvelope, status_code=201)
async def create_case(
    body: CaseCreate,
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    """Create a new patient case."""
    case = Case(**body.model_dump(), user_id=owner_id, folder_structure={})
    db.add(case)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(f"A case with patient id {body.patient_id} already exists") from e

    logger.info("Created case %s for user %s", case.id, owner_id)
    case = await CaseRepository(db).reload(case.id)
    return CaseEnvelope(data=CaseResponse.model_validate(case))


@router.get("", response_model=CaseListEnvelope)
async def list_cases(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    """List the user's cases, newest first."""
    result = await db.execute(
        select(Case)
        .where(Case.user_id == owner_id)
        .order_by(desc(Case.created_at))
        .limit(limit)
        .offset(offset)
    )
    cases = [CaseResponse.model_validate(c) for c in result.scalars().all()]
    return CaseListEnvelope(count=len(cases), data=cases)


@router.get("/{case_id}", response_model=CaseEnvelope)
async def get_case(
    case_id: UUID,
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    case = await CaseRepository(db).get_owned(case_id, owner_id, hide_foreign=True)
    return CaseEnvelope(data=CaseResponse.model_validate(case))


@router.put("/{case_id}", response_model=CaseEnvelope)
async def update_case(
    case_id: UUID,
    body: CaseUpdate,
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
):
    """Update patient fields. Only provided fields are updated."""
    repo = CaseRepository(db)
    case = await repo.get_owned(case_id, owner_id, hide_foreign=True)

    update_data = body.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(case, key, value)

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(f"A case with patient id {body.patient_id} already exists") from e
    return CaseEnvelope(data=CaseResponse.model_validate(await repo.reload(case_id)))


@router.delete("/{case_id}")
async def delete_case(
    case_id: UUID,
    db: AsyncSession = Depends(get_db),
    owner_id: str = Depends(get_owner_id),
    storage: FileStorageService = Depends(get_storage),
):
    """Delete a case, its file records and its folder on disk."""
    case = await CaseRepository(db).get_owned(case_id, owner_id, hide_foreign=True)

    if case.folder_name:
        await storage.remove_tree(storage.case_dir(case.folder_name))

    await db.delete(case)
    await db.commit()
    logger.info("Deleted case %s", case_id)
    return {"success": True, "data": {}}
