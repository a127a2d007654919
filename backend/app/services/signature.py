"""File format signature checks for uploaded medical images.

DICOM files start with a 128-byte preamble followed by the ASCII marker
``DICM``. Only that marker is inspected, the dataset itself is never parsed.
"""
from pathlib import Path

import aiofiles

DICOM_PREAMBLE_LENGTH = 128
DICOM_MAGIC = b"DICM"
HEADER_LENGTH = DICOM_PREAMBLE_LENGTH + len(DICOM_MAGIC)

DICOMDIR_NAME = "DICOMDIR"

IMAGE_SIGNATURES = {
    ".jpg": b"\xff\xd8\xff",
    ".jpeg": b"\xff\xd8\xff",
    ".png": b"\x89PNG\r\n\x1a\n",
}


def has_dicom_signature(data: bytes) -> bool:
    """True iff bytes 128..131 are ``DICM``. Short buffers are simply invalid."""
    if len(data) < HEADER_LENGTH:
        return False
    return data[DICOM_PREAMBLE_LENGTH:HEADER_LENGTH] == DICOM_MAGIC


def has_image_signature(data: bytes, extension: str) -> bool:
    magic = IMAGE_SIGNATURES.get(extension.lower())
    if magic is None:
        return False
    return data.startswith(magic)


def is_signature_exempt(filename: str) -> bool:
    """Extensionless files and DICOMDIR indexes are accepted without a check."""
    name = Path(filename).name
    return name == DICOMDIR_NAME or not Path(name).suffix


def validate_signature(filename: str, data: bytes) -> bool:
    """Check ``data`` (at least the file header) against the format implied by ``filename``."""
    if is_signature_exempt(filename):
        return True
    extension = Path(filename).suffix.lower()
    if extension in IMAGE_SIGNATURES:
        return has_image_signature(data, extension)
    return has_dicom_signature(data)


async def read_header(path: Path) -> bytes:
    """Read the first bytes of a file written to disk, enough for any signature check."""
    async with aiofiles.open(path, "rb") as f:
        return await f.read(HEADER_LENGTH)
