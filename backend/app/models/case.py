"""Case model - patient record owning a folder of uploaded files."""
import uuid
from datetime import date
from sqlalchemy import String, Text, Date, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import Base, OwnerMixin, TimestampMixin, uuid_pk


class Case(Base, TimestampMixin, OwnerMixin):
    __tablename__ = "cases"

    id: Mapped[uuid.UUID] = uuid_pk()
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    patient_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    gender: Mapped[str] = mapped_column(String(10), nullable=False)
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="In Process")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Assigned at most once, see CaseFolderManager.ensure_folder
    folder_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    folder_structure: Mapped[dict] = mapped_column(JSON, default=dict)

    files = relationship(
        "CaseFile", back_populates="case",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="CaseFile.uploaded_at",
    )

    @property
    def full_name(self) -> str:
        if self.middle_name:
            return f"{self.first_name} {self.middle_name} {self.last_name}"
        return f"{self.first_name} {self.last_name}"
