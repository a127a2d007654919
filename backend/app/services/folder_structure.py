"""Folder tree reconstruction from flat upload metadata.

A folder structure is a nested mapping::

    {"study": {"files": [...], "folders": {"series1": {"files": [...], "folders": {}}}}}

Files are stored as their camelCase JSON descriptors so the tree can be
persisted on the case as-is.
"""
from pathlib import PurePosixPath
from typing import Iterable

from app.errors import ValidationError
from app.schemas.file import StagedFile


def split_relative_path(value: str | None) -> list[str]:
    """Normalize a client relative path into segments.

    Backslashes are treated as separators and empty / ``.`` segments are
    dropped. Absolute paths and ``..`` are rejected.
    """
    if not value:
        return []
    normalized = value.replace("\\", "/")
    if normalized.startswith("/") or PurePosixPath(normalized).is_absolute():
        raise ValidationError(f"Relative path must not be absolute: {value}")
    segments = [s for s in normalized.split("/") if s not in ("", ".")]
    if ".." in segments:
        raise ValidationError(f"Relative path must not contain '..': {value}")
    return segments


def parent_folder(relative_path: str | None) -> str:
    """``a/b/c.dcm`` -> ``a/b``; a bare file name has no folder."""
    return "/".join(split_relative_path(relative_path)[:-1])


def _new_node() -> dict:
    return {"files": [], "folders": {}}


def resolve_folder_structure(files: Iterable[StagedFile]) -> dict:
    """Build the folder tree for a batch. Loose files (no relative path) are left out."""
    tree: dict = {}
    for staged in files:
        folders = split_relative_path(staged.relative_path)[:-1]
        if not folders:
            continue
        level = tree
        node = None
        for folder in folders:
            node = level.setdefault(folder, _new_node())
            level = node["folders"]
        node["files"].append(staged.model_dump(by_alias=True, mode="json"))
    return tree


def merge_folder_structure(existing: dict | None, incoming: dict | None) -> dict:
    """Shallow merge: incoming top-level folders replace same-named existing ones."""
    merged = dict(existing or {})
    merged.update(incoming or {})
    return merged
