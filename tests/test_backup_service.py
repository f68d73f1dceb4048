import datetime
import json
import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from backup_service import BackupService
from db import EntityStore
from errors import AuthorizationError, ObjectStoreError
from object_store import LocalObjectStore, ObjectStore, StoredObject
from snapshot import parse_snapshot

FIXED = datetime.datetime(2024, 3, 3, 10, 15, 30, 123000, tzinfo=datetime.timezone.utc)


class MemoryObjectStore(ObjectStore):
    def __init__(self, error: Exception | None = None) -> None:
        self.objects: dict[str, bytes] = {}
        self.listing: list[StoredObject] = []
        self.error = error

    async def put(self, name: str, data: bytes) -> str:
        if self.error is not None:
            raise self.error
        self.objects[name] = data
        return f"backups/{name}"

    async def list(self) -> list[StoredObject]:
        return list(self.listing)

    async def get(self, path: str) -> bytes:
        return self.objects[path]


async def seeded_store(tmp_path) -> EntityStore:
    store = EntityStore(str(tmp_path / "workout.db"))
    await store.categories.upsert("cat-1", "Chest", "#ff4757")
    await store.exercises.upsert("ex-1", "Bench Press", None, "cat-1", "bench.jpg")
    await store.workouts.insert("w-1", "Push day", "2024-03-01", progress=40)
    await store.workout_exercises.insert("we-1", "w-1", "ex-1", 0)
    return store


@pytest.mark.asyncio
async def test_empty_store_has_nothing_to_back_up(tmp_path):
    store = EntityStore(str(tmp_path / "workout.db"))
    objects = MemoryObjectStore()
    service = BackupService(store, objects, clock=lambda: FIXED)

    assert await service.build_snapshot() is None
    assert await service.create_backup() is None
    assert objects.objects == {}


@pytest.mark.asyncio
async def test_snapshot_is_stamped_and_nested(tmp_path):
    store = await seeded_store(tmp_path)
    service = BackupService(store, MemoryObjectStore(), clock=lambda: FIXED)

    snapshot = await service.build_snapshot()

    assert snapshot.timestamp == "2024-03-03T10:15:30.123Z"
    assert snapshot.version == "2.0.0"
    assert snapshot.schema_version == "1.0.0"
    assert [c.id for c in snapshot.categories] == ["cat-1"]
    assert snapshot.workouts[0].progress == 40
    assert snapshot.workouts[0].exercises[0].exercise_id == "ex-1"


@pytest.mark.asyncio
async def test_backup_is_stored_under_timestamped_name(tmp_path):
    store = await seeded_store(tmp_path)
    objects = MemoryObjectStore()
    service = BackupService(store, objects, clock=lambda: FIXED)

    result = await service.create_backup()

    name = "complete-backup-2024-03-03T10-15-30-123Z.json"
    assert result.path == f"backups/{name}"
    assert not result.is_local
    stored = json.loads(objects.objects[name])
    assert set(stored) == {
        "exercises",
        "categories",
        "workouts",
        "timestamp",
        "version",
        "schemaVersion",
    }
    assert stored["exercises"][0]["imageUrl"] == "bench.jpg"
    assert stored["workouts"][0]["exercises"][0]["exerciseId"] == "ex-1"


@pytest.mark.asyncio
async def test_file_name_matches_snapshot_timestamp(tmp_path):
    store = await seeded_store(tmp_path)
    objects = MemoryObjectStore()
    ticks = iter([FIXED, FIXED + datetime.timedelta(seconds=1)])
    service = BackupService(store, objects, clock=lambda: next(ticks))

    result = await service.create_backup()

    assert result.file_name == "complete-backup-2024-03-03T10-15-30-123Z.json"
    stored = json.loads(objects.objects[result.file_name])
    assert stored["timestamp"] == "2024-03-03T10:15:30.123Z"


@pytest.mark.asyncio
async def test_authorization_failure_falls_back_to_local_snapshot(tmp_path):
    store = await seeded_store(tmp_path)
    objects = MemoryObjectStore(AuthorizationError("row-level security policy"))
    service = BackupService(store, objects, clock=lambda: FIXED)

    result = await service.create_backup()

    assert result.is_local
    assert result.path is None
    assert result.file_name == "complete-backup-2024-03-03T10-15-30-123Z.json"
    assert result.snapshot.categories[0].name == "Chest"
    assert parse_snapshot(result.local_bytes()) == result.snapshot


@pytest.mark.asyncio
async def test_other_store_failures_propagate(tmp_path):
    store = await seeded_store(tmp_path)
    service = BackupService(
        store, MemoryObjectStore(ObjectStoreError("network down")), clock=lambda: FIXED
    )
    with pytest.raises(ObjectStoreError):
        await service.create_backup()


@pytest.mark.asyncio
async def test_list_backups_newest_first_without_directories(tmp_path):
    store = EntityStore(str(tmp_path / "workout.db"))
    objects = MemoryObjectStore()
    older = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    newer = datetime.datetime(2024, 2, 1, tzinfo=datetime.timezone.utc)
    objects.listing = [
        StoredObject("exercise-backup-old.json", "exercise-backup-old.json", older),
        StoredObject("archive", "archive/", newer),
        StoredObject("complete-backup-new.json", "complete-backup-new.json", newer),
    ]
    service = BackupService(store, objects, clock=lambda: FIXED)

    entries = await service.list_backups()

    assert [e.path for e in entries] == [
        "complete-backup-new.json",
        "exercise-backup-old.json",
    ]
    assert entries[0].created_at == "2024-02-01T00:00:00.000Z"
    assert [e.complete for e in entries] == [True, False]


@pytest.mark.asyncio
async def test_missing_creation_time_uses_current_time(tmp_path):
    store = EntityStore(str(tmp_path / "workout.db"))
    objects = MemoryObjectStore()
    objects.listing = [StoredObject("a.json", "a.json", None)]
    service = BackupService(store, objects, clock=lambda: FIXED)

    entries = await service.list_backups()

    assert entries[0].to_dict() == {
        "name": "a.json",
        "path": "a.json",
        "created_at": "2024-03-03T10:15:30.123Z",
        "complete": False,
    }


@pytest.mark.asyncio
async def test_local_store_round_trip(tmp_path):
    store = await seeded_store(tmp_path)
    service = BackupService(
        store, LocalObjectStore(str(tmp_path / "backups")), clock=lambda: FIXED
    )

    result = await service.create_backup()
    entries = await service.list_backups()
    data = await service.download_backup(result.path)

    assert [e.path for e in entries] == [result.path]
    assert parse_snapshot(data).exercises[0].id == "ex-1"
