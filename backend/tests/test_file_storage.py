import asyncio
import errno

import aiofiles.os
import pytest

from app.errors import StorageError, ValidationError
from app.services.file_storage import CleanupStatus, FileStorageService


def test_unique_name_keeps_stem_and_extension():
    first = FileStorageService.unique_name("scan1.dcm")
    second = FileStorageService.unique_name("scan1.dcm")

    assert first != second
    assert first.startswith("scan1_") and first.endswith(".dcm")
    assert FileStorageService.unique_name("DICOMDIR").startswith("DICOMDIR_")
    assert "/" not in FileStorageService.unique_name("study/series/a.dcm")


def test_resolve_refuses_paths_outside_root(storage):
    assert storage.resolve("staging/batch_1/a.dcm") == storage.base_path / "staging" / "batch_1" / "a.dcm"
    with pytest.raises(ValidationError):
        storage.resolve("../outside.dcm")
    with pytest.raises(ValidationError):
        storage.resolve("/etc/passwd")
    with pytest.raises(ValidationError):
        storage.resolve("")


def test_ensure_directory_is_idempotent(storage):
    async def scenario():
        first = await storage.ensure_directory(storage.base_path, ["case_1", "study", "series"])
        second = await storage.ensure_directory(storage.base_path, ["case_1", "study", "series"])
        return first, second

    first, second = asyncio.run(scenario())

    assert first == second
    assert first.is_dir()
    assert first == storage.base_path / "case_1" / "study" / "series"


def test_ensure_directory_fails_when_a_file_is_in_the_way(storage):
    (storage.base_path / "case_1").write_bytes(b"not a folder")

    with pytest.raises(StorageError):
        asyncio.run(storage.ensure_directory(storage.base_path, ["case_1", "study"]))


def test_save_never_overwrites(storage):
    async def scenario():
        await storage.save(b"one", storage.base_path, "a.dcm")
        await storage.save(b"two", storage.base_path, "a.dcm")

    with pytest.raises(StorageError):
        asyncio.run(scenario())
    assert (storage.base_path / "a.dcm").read_bytes() == b"one"


def test_move_renames(storage):
    source = storage.base_path / "a.dcm"
    source.write_bytes(b"data")
    destination = storage.base_path / "b.dcm"

    method = asyncio.run(storage.move(source, destination))

    assert method == "rename"
    assert not source.exists()
    assert destination.read_bytes() == b"data"


def test_move_falls_back_to_copy_when_rename_fails(storage, monkeypatch):
    async def cross_device(src, dst):
        raise OSError(errno.EXDEV, "Invalid cross-device link")

    monkeypatch.setattr(aiofiles.os, "rename", cross_device)
    source = storage.base_path / "a.dcm"
    source.write_bytes(b"data")
    destination = storage.base_path / "b.dcm"

    method = asyncio.run(storage.move(source, destination))

    assert method == "copy"
    assert not source.exists()
    assert destination.read_bytes() == b"data"


def test_move_of_missing_source_raises(storage):
    with pytest.raises(StorageError):
        asyncio.run(storage.move(storage.base_path / "gone.dcm", storage.base_path / "b.dcm"))


def test_size_reads_the_file_on_disk(storage):
    path = storage.base_path / "a.dcm"
    path.write_bytes(b"x" * 42)

    assert asyncio.run(storage.size(path)) == 42
    with pytest.raises(StorageError):
        asyncio.run(storage.size(storage.base_path / "gone.dcm"))

def test_delete_reports_missing_file(storage):
    path = storage.base_path / "a.dcm"
    path.write_bytes(b"data")

    assert asyncio.run(storage.delete(path)) is True
    assert asyncio.run(storage.delete(path)) is False


def test_remove_empty_dirs_walks_up_to_stop(storage):
    deep = storage.staging_root / "batch_1" / "study" / "series"
    deep.mkdir(parents=True)

    result = asyncio.run(storage.remove_empty_dirs(deep, storage.staging_root))

    assert result.status is CleanupStatus.REMOVED
    assert not (storage.staging_root / "batch_1").exists()
    assert storage.staging_root.is_dir()


def test_remove_empty_dirs_stops_at_non_empty_parent(storage):
    deep = storage.staging_root / "batch_1" / "study" / "series"
    deep.mkdir(parents=True)
    (storage.staging_root / "batch_1" / "study" / "keep.dcm").write_bytes(b"x")

    result = asyncio.run(storage.remove_empty_dirs(deep, storage.staging_root))

    assert result.status is CleanupStatus.REMOVED
    assert not deep.exists()
    assert (storage.staging_root / "batch_1" / "study").is_dir()


def test_remove_empty_dirs_reports_not_empty_and_skipped(storage):
    folder = storage.staging_root / "batch_1"
    folder.mkdir(parents=True)
    (folder / "a.dcm").write_bytes(b"x")

    assert asyncio.run(storage.remove_empty_dirs(folder, storage.staging_root)).status is CleanupStatus.NOT_EMPTY
    assert asyncio.run(storage.remove_empty_dirs(storage.staging_root, storage.staging_root)).status is CleanupStatus.SKIPPED


def test_remove_empty_dirs_reports_failure(storage, monkeypatch):
    async def denied(path):
        raise PermissionError(errno.EACCES, "Permission denied")

    folder = storage.staging_root / "batch_1"
    folder.mkdir(parents=True)
    monkeypatch.setattr(aiofiles.os, "rmdir", denied)

    result = asyncio.run(storage.remove_empty_dirs(folder, storage.staging_root))

    assert result.status is CleanupStatus.FAILED
    assert "Permission denied" in result.error
