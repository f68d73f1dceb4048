import datetime
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from db import EntityStore
from errors import AuthorizationError, ObjectStoreError
from object_store import ObjectStore
from snapshot import (
    Snapshot,
    backup_file_name,
    is_complete_backup,
    iso_timestamp,
    new_snapshot,
    serialize_snapshot,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    """Outcome of persisting a snapshot.

    Exactly one of ``path`` (stored remotely) or ``snapshot`` (must be
    saved locally under ``file_name``) is set.
    """

    file_name: str
    path: Optional[str] = None
    snapshot: Optional[Snapshot] = None

    @property
    def is_local(self) -> bool:
        return self.snapshot is not None

    def local_bytes(self) -> bytes:
        if self.snapshot is None:
            raise ValueError("backup was stored remotely")
        return serialize_snapshot(self.snapshot)


@dataclass
class BackupEntry:
    name: str
    path: str
    created_at: str
    complete: bool

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "created_at": self.created_at,
            "complete": self.complete,
        }


class BackupService:
    """Builds snapshots of the entity store and keeps them in a durable store."""

    def __init__(
        self,
        store: EntityStore,
        object_store: ObjectStore,
        clock: Callable[[], datetime.datetime] = utc_now,
    ) -> None:
        self.store = store
        self.object_store = object_store
        self.clock = clock

    async def build_snapshot(self) -> Snapshot | None:
        """Return a snapshot of everything, or ``None`` when there is no data."""
        categories = await self.store.read_categories()
        exercises = await self.store.read_exercises()
        workouts = await self.store.read_workouts()
        if not (categories or exercises or workouts):
            logger.warning("No data to back up")
            return None
        return new_snapshot(categories, exercises, workouts, self.clock())

    async def persist(self, snapshot: Snapshot) -> BackupResult:
        """Write ``snapshot`` to the durable store.

        An authorization failure yields a local fallback result. Any other
        store failure propagates without retry.
        """
        file_name = backup_file_name(snapshot.timestamp or self.clock())
        try:
            path = await self.object_store.put(file_name, serialize_snapshot(snapshot))
        except AuthorizationError as e:
            logger.info(
                "Storage policy prevents server backup, creating local backup %s: %s",
                file_name,
                e,
            )
            return BackupResult(file_name=file_name, snapshot=snapshot)
        except ObjectStoreError:
            logger.error("Error uploading backup %s", file_name, exc_info=True)
            raise
        logger.info(
            "Complete backup created at %s (%d categories, %d exercises, %d workouts)",
            path,
            len(snapshot.categories),
            len(snapshot.exercises),
            len(snapshot.workouts),
        )
        return BackupResult(file_name=file_name, path=path)

    async def create_backup(self) -> BackupResult | None:
        snapshot = await self.build_snapshot()
        if snapshot is None:
            return None
        return await self.persist(snapshot)

    async def list_backups(self) -> List[BackupEntry]:
        """Return stored backups, newest first."""
        objects = await self.object_store.list()
        fallback = self.clock()
        entries = []
        for obj in objects:
            if obj.is_directory:
                continue
            created = obj.created_at or fallback
            entries.append((created, obj))
        entries.sort(key=lambda item: item[0], reverse=True)
        return [
            BackupEntry(
                name=obj.name,
                path=obj.path,
                created_at=iso_timestamp(created),
                complete=is_complete_backup(obj.name),
            )
            for created, obj in entries
        ]

    async def download_backup(self, path: str) -> bytes:
        data = await self.object_store.get(path)
        logger.info("Downloaded backup %s (%d bytes)", path, len(data))
        return data
