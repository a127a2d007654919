"""File storage on the local filesystem under a single, injected storage root.

Layout::

    <root>/<staging>/batch_<token>/...   files not yet bound to a case
    <root>/<case folder name>/...        files associated with a case

All paths stored in the database are POSIX paths relative to the root.
"""
import asyncio
import errno
import logging
import shutil
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import aiofiles
import aiofiles.os

from app.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)


class CleanupStatus(str, Enum):
    """Outcome of pruning a directory that may have been emptied by a move."""
    REMOVED = "removed"
    NOT_EMPTY = "not_empty"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CleanupResult:
    status: CleanupStatus
    path: Path | None = None
    error: str | None = None


class FileStorageService:
    """Handles file write/move/delete on local disk below ``base_path``."""

    def __init__(self, base_path: str | Path, staging_dir_name: str = "staging"):
        self.base_path = Path(base_path).resolve()
        self.staging_dir_name = staging_dir_name
        self.staging_root = self.base_path / staging_dir_name
        self.base_path.mkdir(parents=True, exist_ok=True)

    # ── paths ────────────────────────────────────────────────────

    def resolve(self, relative_path: str) -> Path:
        """Turn a stored relative path into an absolute one, refusing to leave the root."""
        candidate = (self.base_path / relative_path).resolve()
        if candidate == self.base_path or not candidate.is_relative_to(self.base_path):
            raise ValidationError(f"Path escapes storage root: {relative_path}")
        return candidate

    def relative(self, path: Path) -> str:
        return path.relative_to(self.base_path).as_posix()

    def case_dir(self, folder_name: str) -> Path:
        return self.base_path / folder_name

    def new_batch_name(self) -> str:
        return f"batch_{uuid.uuid4().hex}"

    def is_staged(self, path: Path) -> bool:
        return path.is_relative_to(self.staging_root)

    @staticmethod
    def unique_name(original_name: str) -> str:
        """``scan.dcm`` -> ``scan_<token>.dcm`` so identical names never collide."""
        name = Path(original_name).name
        suffix = Path(name).suffix
        stem = name[: -len(suffix)] if suffix else name
        return f"{stem}_{uuid.uuid4().hex[:12]}{suffix}"

    # ── directories ──────────────────────────────────────────────

    async def ensure_directory(self, base: Path, segments: list[str]) -> Path:
        """Create ``base/seg1/seg2/...`` one segment at a time.

        Existing segments are fine, as is another request creating the same
        segment concurrently.
        """
        current = base
        for segment in segments:
            current = current / segment
            try:
                await aiofiles.os.mkdir(current)
            except FileExistsError:
                if not await aiofiles.os.path.isdir(current):
                    raise StorageError(f"Cannot create folder, a file is in the way: {self.relative(current)}")
            except OSError as e:
                raise StorageError(f"Cannot create folder {current}: {e}") from e
        return current

    async def remove_empty_dirs(self, start: Path, stop: Path) -> CleanupResult:
        """Remove ``start`` and then its parents while they are empty.

        ``stop`` and everything above it are never touched. Failures are
        reported in the result, never raised.
        """
        if start == stop or not start.is_relative_to(stop):
            return CleanupResult(CleanupStatus.SKIPPED, start)

        removed_any = False
        current = start
        while current != stop:
            try:
                await aiofiles.os.rmdir(current)
            except FileNotFoundError:
                pass
            except OSError as e:
                if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                    status = CleanupStatus.REMOVED if removed_any else CleanupStatus.NOT_EMPTY
                    return CleanupResult(status, current)
                logger.warning("Could not remove directory %s: %s", current, e)
                return CleanupResult(CleanupStatus.FAILED, current, str(e))
            else:
                removed_any = True
            current = current.parent
        return CleanupResult(CleanupStatus.REMOVED, start)

    async def remove_tree(self, path: Path) -> bool:
        """Best-effort recursive delete. Returns False when nothing was removed."""
        if not await aiofiles.os.path.exists(path):
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            logger.error("Failed to delete folder %s: %s", path, e)
            return False
        return True

    # ── files ────────────────────────────────────────────────────

    async def save(self, file_bytes: bytes, directory: Path, filename: str) -> Path:
        """Write bytes to a new file. Never overwrites an existing one."""
        file_path = directory / filename
        try:
            async with aiofiles.open(file_path, "xb") as f:
                await f.write(file_bytes)
        except OSError as e:
            raise StorageError(f"Failed to write {filename}: {e}") from e
        return file_path

    async def exists(self, path: Path) -> bool:
        return await aiofiles.os.path.isfile(path)

    async def size(self, path: Path) -> int:
        try:
            stat = await aiofiles.os.stat(path)
        except OSError as e:
            raise StorageError(f"Failed to stat {self.relative(path)}: {e}") from e
        return stat.st_size

    async def move(self, source: Path, destination: Path) -> str:
        """Move a file, returning the method used (``rename`` or ``copy``).

        Rename is tried first; when it fails (e.g. across devices) the file
        is copied and the source deleted.
        """
        try:
            await aiofiles.os.rename(source, destination)
            return "rename"
        except FileNotFoundError as e:
            raise StorageError(f"Source file missing: {source}") from e
        except OSError as e:
            logger.warning("Rename %s -> %s failed (%s), copying instead", source, destination, e)

        try:
            await asyncio.to_thread(shutil.copy2, source, destination)
        except OSError as e:
            raise StorageError(f"Failed to move {source} to {destination}: {e}") from e
        try:
            await aiofiles.os.remove(source)
        except OSError as e:
            # The copy is in place, a leftover staged file is only clutter
            logger.warning("Copied %s but could not delete the source: %s", source, e)
        return "copy"

    async def delete(self, path: Path) -> bool:
        """Delete a file. Returns False if it was already gone."""
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {self.relative(path)}: {e}") from e
        return True
