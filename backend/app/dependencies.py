"""Shared FastAPI dependencies."""
from typing import Optional

from fastapi import Header, Request

from app.errors import AuthenticationError
from app.services.file_storage import FileStorageService


def get_storage(request: Request) -> FileStorageService:
    """The storage service built at startup. Services never read settings themselves."""
    return request.app.state.storage


async def get_owner_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Id of the authenticated principal, set by the auth proxy in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Not authorized to access this route")
    return x_user_id.strip()
