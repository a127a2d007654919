"""Import all models so SQLAlchemy metadata knows about them."""
from app.models.base import Base
from app.models.case import Case
from app.models.case_file import CaseFile

__all__ = ["Base", "Case", "CaseFile"]
