"""Error taxonomy for the case file pipeline.

Every error carries the HTTP status it maps to; the handler registered in
``app.main`` renders them as ``{"success": false, "error": message}``.
"""


class CaseFilesError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CaseFilesError):
    """Bad or missing upload, invalid file signature, missing field."""

    status_code = 400


class AuthenticationError(CaseFilesError):
    status_code = 401


class AuthorizationError(CaseFilesError):
    """The requesting principal does not own the case."""

    status_code = 403


class NotFoundError(CaseFilesError):
    status_code = 404


class ConflictError(CaseFilesError):
    status_code = 409


class StorageError(CaseFilesError):
    """Disk failure with no fallback path (permissions, disk full)."""

    status_code = 500
