"""Case request/response schemas."""
import uuid
from typing import Literal, Optional
from datetime import date, datetime
from pydantic import Field, field_validator
from app.schemas.base import CamelModel, CamelORMModel, Envelope

Gender = Literal["male", "female", "other"]
CaseStatus = Literal["In Process", "Cancelled", "Completed"]


class CaseCreate(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    middle_name: Optional[str] = Field(None, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    patient_id: str = Field(..., min_length=1, max_length=100)
    gender: Gender
    birth_date: date
    status: CaseStatus = "In Process"
    notes: Optional[str] = None


class CaseUpdate(CamelModel):
    """Patient fields only. Files and folder fields belong to the file pipeline."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    middle_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    patient_id: Optional[str] = Field(None, min_length=1, max_length=100)
    gender: Optional[Gender] = None
    birth_date: Optional[date] = None
    status: Optional[CaseStatus] = None
    notes: Optional[str] = None


class CaseFileResponse(CamelORMModel):
    id: uuid.UUID
    name: str
    path: str
    relative_path: str = ""
    size: int
    mime_type: str
    uploaded_at: Optional[datetime] = None


class CaseResponse(CamelORMModel):
    id: uuid.UUID
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    full_name: str
    patient_id: str
    gender: str
    birth_date: date
    status: str
    notes: Optional[str] = None
    user_id: str
    folder_name: Optional[str] = None
    folder_structure: dict = {}
    files: list[CaseFileResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("folder_structure", mode="before")
    @classmethod
    def none_to_dict(cls, v):
        return v if v is not None else {}


class CaseEnvelope(Envelope):
    data: CaseResponse


class CaseListEnvelope(Envelope):
    count: int
    data: list[CaseResponse]
