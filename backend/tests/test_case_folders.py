import asyncio
import re
import uuid

import pytest

from app.errors import NotFoundError
from app.services.case_folders import CaseFolderManager, generate_folder_name
from app.services.case_repository import CaseRepository
from factories import create_case


def test_generate_folder_name_format():
    case_id = uuid.uuid4()
    assert generate_folder_name(case_id, now=1700000000.123) == f"case_{case_id}_1700000000123"


def test_ensure_folder_is_idempotent(storage, db_scope, monkeypatch):
    writes = []
    original = CaseRepository.set_folder_name_if_absent

    async def counting(self, case_id, folder_name):
        writes.append(folder_name)
        return await original(self, case_id, folder_name)

    monkeypatch.setattr(CaseRepository, "set_folder_name_if_absent", counting)

    async def scenario():
        async with db_scope() as db:
            case = await create_case(db)
            manager = CaseFolderManager(storage)
            first = await manager.ensure_folder(db, case.id)
            second = await manager.ensure_folder(db, case.id)
            stored = (await CaseRepository(db).reload(case.id)).folder_name
            return case.id, first, second, stored

    case_id, first, second, stored = asyncio.run(scenario())

    assert first == second == stored
    assert re.fullmatch(rf"case_{case_id}_\d+", first)
    assert len(writes) == 1
    assert [p.name for p in storage.base_path.iterdir()] == [first]


def test_existing_folder_name_is_returned_unchanged(storage, db_scope):
    async def scenario():
        async with db_scope() as db:
            case = await create_case(db, folder_name="case_legacy_42")
            return await CaseFolderManager(storage).ensure_folder(db, case.id)

    assert asyncio.run(scenario()) == "case_legacy_42"
    assert (storage.base_path / "case_legacy_42").is_dir()


def test_losing_the_assignment_race_uses_the_winners_name(storage, db_scope, monkeypatch):
    original = CaseRepository.set_folder_name_if_absent

    async def beaten(self, case_id, folder_name):
        # another process assigns first, our conditional write then matches nothing
        await original(self, case_id, "case_winner")
        return await original(self, case_id, folder_name)

    monkeypatch.setattr(CaseRepository, "set_folder_name_if_absent", beaten)

    async def scenario():
        async with db_scope() as db:
            case = await create_case(db)
            name = await CaseFolderManager(storage).ensure_folder(db, case.id)
            stored = (await CaseRepository(db).reload(case.id)).folder_name
            return name, stored

    name, stored = asyncio.run(scenario())

    assert name == stored == "case_winner"
    assert (storage.base_path / "case_winner").is_dir()


def test_ensure_folder_for_unknown_case(storage, db_scope):
    async def scenario():
        async with db_scope() as db:
            await CaseFolderManager(storage).ensure_folder(db, uuid.uuid4())

    with pytest.raises(NotFoundError):
        asyncio.run(scenario())


def test_ensure_directory_creates_nested_segments(storage):
    async def scenario():
        manager = CaseFolderManager(storage)
        await manager.ensure_directory("case_1", ["study"])
        return await manager.ensure_directory("case_1", ["study", "series1", "echo"])

    deepest = asyncio.run(scenario())

    assert deepest == storage.base_path / "case_1" / "study" / "series1" / "echo"
    assert deepest.is_dir()
