"""Replays a snapshot into the entity store.

Stages run strictly in order:

1. parse and validate the snapshot; nothing is written on failure
2. upsert categories, then exercises, keyed by their stable ids, in one
   transaction; any failure rolls the catalog phase back and raises
   ``FatalStoreError``
3. when the snapshot carries workouts, delete every stored workout and
   insert the snapshot's workouts one by one, each in its own
   transaction together with its exercise entries and sets

Failures of a single workout, exercise entry or set batch are recorded
in the returned ``RestoreResult`` and the restore continues. A failed
workout skips its whole subtree and a failed entry skips its sets.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import List

from db import EntityStore
from errors import FatalStoreError
from snapshot import Snapshot, Workout, parse_snapshot

logger = logging.getLogger(__name__)


@dataclass
class RestoreFailure:
    kind: str
    id: str
    reason: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "id": self.id, "reason": self.reason}


@dataclass
class RestoreResult:
    """Ids reconciled per entity type plus every per-item failure."""

    categories: List[str] = field(default_factory=list)
    exercises: List[str] = field(default_factory=list)
    workouts: List[str] = field(default_factory=list)
    created: int = 0
    updated: int = 0
    workouts_deleted: int = 0
    failed: List[RestoreFailure] = field(default_factory=list)
    success: bool = True

    @property
    def partial(self) -> bool:
        return bool(self.failed)

    def failure_count(self, kind: str | None = None) -> int:
        return sum(1 for f in self.failed if kind is None or f.kind == kind)

    def summary(self) -> str:
        text = (
            f"Restored {len(self.categories)} categories, {len(self.exercises)} exercises "
            f"and {len(self.workouts)} workouts"
        )
        if self.failed:
            text += f"; {len(self.failed)} items failed"
        return text

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.summary(),
            "categories": list(self.categories),
            "exercises": list(self.exercises),
            "workouts": list(self.workouts),
            "created": self.created,
            "updated": self.updated,
            "workouts_deleted": self.workouts_deleted,
            "failed": [f.to_dict() for f in self.failed],
        }


class RestoreService:
    """Merges snapshots into the entity store."""

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    async def restore(self, data: bytes | str) -> RestoreResult:
        snapshot = parse_snapshot(data)
        return await self.restore_snapshot(snapshot)

    async def restore_snapshot(self, snapshot: Snapshot) -> RestoreResult:
        result = RestoreResult()
        await self._restore_catalog(snapshot, result)
        if snapshot.workouts:
            await self._restore_workouts(snapshot.workouts, result)
        if result.failed:
            logger.warning(
                "Restore finished with %d failed items", len(result.failed)
            )
        logger.info(result.summary())
        return result

    async def _restore_catalog(self, snapshot: Snapshot, result: RestoreResult) -> None:
        categories = self.store.categories
        exercises = self.store.exercises
        try:
            async with self.store.transaction() as conn:
                for category in snapshot.categories:
                    existed = await categories.exists(category.id, conn)
                    await categories.upsert(
                        category.id, category.name, category.color, conn
                    )
                    self._count(result, existed)
                    result.categories.append(category.id)
                for exercise in snapshot.exercises:
                    existed = await exercises.exists(exercise.id, conn)
                    await exercises.upsert(
                        exercise.id,
                        exercise.name,
                        exercise.description,
                        exercise.category,
                        exercise.image_url,
                        conn,
                    )
                    self._count(result, existed)
                    result.exercises.append(exercise.id)
        except sqlite3.Error as e:
            logger.error("Error restoring exercise catalog", exc_info=True)
            raise FatalStoreError(f"catalog restore failed: {e}") from e

    @staticmethod
    def _count(result: RestoreResult, existed: bool) -> None:
        if existed:
            result.updated += 1
        else:
            result.created += 1

    async def _restore_workouts(
        self, workouts: List[Workout], result: RestoreResult
    ) -> None:
        try:
            result.workouts_deleted = await self.store.workouts.delete_all()
        except sqlite3.Error as e:
            logger.error("Error clearing workouts", exc_info=True)
            raise FatalStoreError(f"clearing workouts failed: {e}") from e
        logger.info("Deleted %d existing workouts", result.workouts_deleted)
        for workout in workouts:
            try:
                async with self.store.transaction() as conn:
                    await self._restore_workout(workout, result, conn)
            except sqlite3.Error as e:
                logger.warning("Error restoring workout %s: %s", workout.id, e)
                result.failed.append(RestoreFailure("workout", workout.id, str(e)))
                continue
            result.workouts.append(workout.id)

    async def _restore_workout(self, workout: Workout, result: RestoreResult, conn) -> None:
        await self.store.workouts.insert(
            workout.id,
            workout.name,
            workout.date,
            description=workout.description or None,
            completed=workout.completed,
            progress=workout.progress or 0,
            archived=workout.archived or False,
            conn=conn,
        )
        for entry in workout.exercises:
            try:
                await self.store.workout_exercises.insert(
                    entry.id, workout.id, entry.exercise_id, entry.order, conn
                )
            except sqlite3.Error as e:
                logger.warning("Error restoring workout exercise %s: %s", entry.id, e)
                result.failed.append(
                    RestoreFailure("workout_exercise", entry.id, str(e))
                )
                continue
            if not entry.sets:
                continue
            # a failing batch must not leave some of its sets behind
            await conn.execute("SAVEPOINT restore_sets;")
            try:
                await self.store.exercise_sets.bulk_insert(entry.id, entry.sets, conn)
            except sqlite3.Error as e:
                await conn.execute("ROLLBACK TO restore_sets;")
                logger.warning("Error restoring sets for %s: %s", entry.id, e)
                result.failed.append(RestoreFailure("exercise_sets", entry.id, str(e)))
            await conn.execute("RELEASE restore_sets;")
