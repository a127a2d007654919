"""Test data builders shared by the test modules."""
from datetime import date

from app.models import Case

OWNER = "user-1"
OTHER_OWNER = "user-2"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32


def dicom_bytes(payload: bytes = b"") -> bytes:
    """Smallest buffer that passes the DICM check."""
    return b"\x00" * 128 + b"DICM" + payload


async def create_case(db, owner: str = OWNER, patient_id: str = "P-001", **fields) -> Case:
    case = Case(
        first_name=fields.pop("first_name", "Ada"),
        last_name=fields.pop("last_name", "Lovelace"),
        patient_id=patient_id,
        gender=fields.pop("gender", "female"),
        birth_date=fields.pop("birth_date", date(1980, 1, 1)),
        user_id=owner,
        folder_structure={},
        **fields,
    )
    db.add(case)
    await db.commit()
    return case
