import sqlite3
import aiosqlite
import datetime
import uuid
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Iterable

from snapshot import Category, Exercise, ExerciseSet, Workout, WorkoutExercise


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "categories": (
            """CREATE TABLE categories (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    color TEXT,
                    created_at TEXT NOT NULL
                );""",
            ["id", "name", "color", "created_at"],
        ),
        "exercises": (
            """CREATE TABLE exercises (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    category TEXT,
                    image_url TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT,
                    FOREIGN KEY(category) REFERENCES categories(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "name",
                "description",
                "category",
                "image_url",
                "created_at",
                "updated_at",
            ],
        ),
        "workouts": (
            """CREATE TABLE workouts (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    date TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    progress INTEGER,
                    archived INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );""",
            [
                "id",
                "name",
                "description",
                "date",
                "completed",
                "progress",
                "archived",
                "created_at",
            ],
        ),
        "workout_exercises": (
            """CREATE TABLE workout_exercises (
                    id TEXT PRIMARY KEY,
                    workout_id TEXT NOT NULL,
                    exercise_id TEXT NOT NULL,
                    order_index INTEGER NOT NULL,
                    FOREIGN KEY(workout_id) REFERENCES workouts(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            ["id", "workout_id", "exercise_id", "order_index"],
        ),
        "exercise_sets": (
            """CREATE TABLE exercise_sets (
                    id TEXT PRIMARY KEY,
                    workout_exercise_id TEXT NOT NULL,
                    set_number INTEGER NOT NULL,
                    weight REAL,
                    target_reps INTEGER NOT NULL,
                    actual_reps INTEGER,
                    completed INTEGER NOT NULL DEFAULT 0,
                    notes TEXT,
                    FOREIGN KEY(workout_exercise_id) REFERENCES workout_exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "workout_exercise_id",
                "set_number",
                "weight",
                "target_reps",
                "actual_reps",
                "completed",
                "notes",
            ],
        ),
    }

    _INDEXES = {
        "exercises_name_idx": ("exercises", "name"),
        "categories_name_idx": ("categories", "name"),
        "workouts_date_idx": ("workouts", "date"),
    }

    def __init__(self, db_path: str = "workout.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._ensure_indexes()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA foreign_keys=off;")
            # keep references in other tables pointing at the rebuilt table
            conn.execute("PRAGMA legacy_alter_table=on;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            conn.execute("PRAGMA legacy_alter_table=off;")
            conn.execute("PRAGMA foreign_keys=on;")

    def _ensure_indexes(self) -> None:
        with self._connection() as conn:
            for name, (table, column) in self._INDEXES.items():
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({column});"
                )

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "created_at":
                        return f"'{_now()}'"
                    if col in ("completed", "archived"):
                        return "0"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self):
        """Yield a connection whose writes commit together or not at all."""
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=ON;")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous repository helpers using aiosqlite.

    Every helper accepts an optional open connection. Without one the
    statement runs and commits on its own connection.
    """

    async def execute(self, query: str, params: Tuple = (), conn=None) -> int:
        if conn is not None:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
        async with self._async_connection() as own:
            cursor = await own.execute(query, params)
            await own.commit()
            return cursor.rowcount

    async def executemany(
        self, query: str, rows: Iterable[Tuple], conn=None
    ) -> None:
        if conn is not None:
            await conn.executemany(query, rows)
            return
        async with self._async_connection() as own:
            await own.executemany(query, rows)
            await own.commit()

    async def fetch_all(self, query: str, params: Tuple = (), conn=None) -> List[Tuple]:
        if conn is not None:
            cursor = await conn.execute(query, params)
            return list(await cursor.fetchall())
        async with self._async_connection() as own:
            cursor = await own.execute(query, params)
            rows = await cursor.fetchall()
            return list(rows)

    async def _exists(self, table: str, row_id: str, conn=None) -> bool:
        rows = await self.fetch_all(
            f"SELECT 1 FROM {table} WHERE id = ?;", (row_id,), conn
        )
        return bool(rows)

    async def _delete_all(self, table: str, conn=None) -> int:
        return await self.execute(f"DELETE FROM {table};", (), conn)


class AsyncCategoryRepository(AsyncBaseRepository):
    """Async repository for exercise categories."""

    async def fetch_all_categories(self) -> List[Tuple[str, str, Optional[str]]]:
        return await self.fetch_all(
            "SELECT id, name, color FROM categories ORDER BY name;"
        )

    async def exists(self, category_id: str, conn=None) -> bool:
        return await self._exists("categories", category_id, conn)

    async def upsert(
        self, category_id: str, name: str, color: Optional[str], conn=None
    ) -> None:
        await self.execute(
            "INSERT INTO categories (id, name, color, created_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET name=excluded.name, color=excluded.color;",
            (category_id, name, color, _now()),
            conn,
        )


class AsyncExerciseRepository(AsyncBaseRepository):
    """Async repository for the exercise catalog."""

    async def fetch_all_exercises(
        self,
    ) -> List[Tuple[str, str, Optional[str], Optional[str], Optional[str]]]:
        return await self.fetch_all(
            "SELECT id, name, description, category, image_url FROM exercises ORDER BY name;"
        )

    async def exists(self, exercise_id: str, conn=None) -> bool:
        return await self._exists("exercises", exercise_id, conn)

    async def upsert(
        self,
        exercise_id: str,
        name: str,
        description: Optional[str],
        category: Optional[str],
        image_url: Optional[str],
        conn=None,
    ) -> None:
        now = _now()
        await self.execute(
            "INSERT INTO exercises (id, name, description, category, image_url, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET name=excluded.name, description=excluded.description, "
            "category=excluded.category, image_url=excluded.image_url, updated_at=?;",
            (exercise_id, name, description, category, image_url, now, now),
            conn,
        )


class AsyncWorkoutRepository(AsyncBaseRepository):
    """Async repository for workout table operations."""

    async def fetch_all_workouts(
        self,
    ) -> List[
        Tuple[str, str, Optional[str], str, int, Optional[int], int]
    ]:
        return await self.fetch_all(
            "SELECT id, name, description, date, completed, progress, archived "
            "FROM workouts ORDER BY date DESC, id;"
        )

    async def insert(
        self,
        workout_id: str,
        name: str,
        date: str,
        description: Optional[str] = None,
        completed: bool = False,
        progress: Optional[int] = 0,
        archived: bool = False,
        conn=None,
    ) -> str:
        await self.execute(
            "INSERT INTO workouts (id, name, description, date, completed, progress, archived, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            (
                workout_id,
                name,
                description,
                date,
                int(completed),
                progress,
                int(archived),
                _now(),
            ),
            conn,
        )
        return workout_id

    async def delete_all(self, except_ids: Iterable[str] = (), conn=None) -> int:
        """Delete every workout whose id is not in ``except_ids``."""
        keep = list(except_ids)
        if not keep:
            return await self._delete_all("workouts", conn)
        marks = ", ".join("?" for _ in keep)
        return await self.execute(
            f"DELETE FROM workouts WHERE id NOT IN ({marks});", tuple(keep), conn
        )


class AsyncWorkoutExerciseRepository(AsyncBaseRepository):
    """Async repository linking workouts to catalog exercises."""

    async def fetch_all_entries(self) -> List[Tuple[str, str, str, int]]:
        return await self.fetch_all(
            "SELECT id, workout_id, exercise_id, order_index FROM workout_exercises "
            "ORDER BY workout_id, order_index;"
        )

    async def insert(
        self,
        entry_id: str,
        workout_id: str,
        exercise_id: str,
        order_index: int,
        conn=None,
    ) -> str:
        await self.execute(
            "INSERT INTO workout_exercises (id, workout_id, exercise_id, order_index) VALUES (?, ?, ?, ?);",
            (entry_id, workout_id, exercise_id, order_index),
            conn,
        )
        return entry_id


class AsyncExerciseSetRepository(AsyncBaseRepository):
    """Async repository for sets performed within a workout exercise."""

    async def fetch_all_sets(
        self,
    ) -> List[
        Tuple[str, str, int, Optional[float], int, Optional[int], int, Optional[str]]
    ]:
        return await self.fetch_all(
            "SELECT id, workout_exercise_id, set_number, weight, target_reps, actual_reps, completed, notes "
            "FROM exercise_sets ORDER BY workout_exercise_id, set_number;"
        )

    async def bulk_insert(
        self, workout_exercise_id: str, sets: Iterable[ExerciseSet], conn=None
    ) -> int:
        rows = [
            (
                str(uuid.uuid4()),
                workout_exercise_id,
                s.set_number,
                s.weight,
                s.target_reps,
                s.actual_reps,
                int(s.completed),
                s.notes or None,
            )
            for s in sets
        ]
        if not rows:
            return 0
        await self.executemany(
            "INSERT INTO exercise_sets (id, workout_exercise_id, set_number, weight, target_reps, actual_reps, completed, notes) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?);",
            rows,
            conn,
        )
        return len(rows)


class EntityStore(AsyncDatabase):
    """Groups the entity repositories that share one database file."""

    def __init__(self, db_path: str = "workout.db") -> None:
        super().__init__(db_path)
        self.categories = AsyncCategoryRepository(db_path)
        self.exercises = AsyncExerciseRepository(db_path)
        self.workouts = AsyncWorkoutRepository(db_path)
        self.workout_exercises = AsyncWorkoutExerciseRepository(db_path)
        self.exercise_sets = AsyncExerciseSetRepository(db_path)

    async def read_categories(self) -> List[Category]:
        rows = await self.categories.fetch_all_categories()
        return [Category(id=cid, name=name, color=color) for cid, name, color in rows]

    async def read_exercises(self) -> List[Exercise]:
        rows = await self.exercises.fetch_all_exercises()
        return [
            Exercise(
                id=eid,
                name=name,
                description=description,
                category=category,
                image_url=image_url,
            )
            for eid, name, description, category, image_url in rows
        ]

    async def read_workouts(self) -> List[Workout]:
        """Return every workout with its exercise entries and their sets."""
        sets_by_entry: dict[str, list[ExerciseSet]] = {}
        for (
            _sid,
            entry_id,
            set_number,
            weight,
            target_reps,
            actual_reps,
            completed,
            notes,
        ) in await self.exercise_sets.fetch_all_sets():
            sets_by_entry.setdefault(entry_id, []).append(
                ExerciseSet(
                    set_number=set_number,
                    weight=weight,
                    target_reps=target_reps,
                    actual_reps=actual_reps,
                    completed=bool(completed),
                    notes=notes,
                )
            )
        entries_by_workout: dict[str, list[WorkoutExercise]] = {}
        for entry_id, workout_id, exercise_id, order_index in (
            await self.workout_exercises.fetch_all_entries()
        ):
            entries_by_workout.setdefault(workout_id, []).append(
                WorkoutExercise(
                    id=entry_id,
                    exercise_id=exercise_id,
                    order=order_index,
                    sets=sets_by_entry.get(entry_id, []),
                )
            )
        return [
            Workout(
                id=wid,
                name=name,
                description=description,
                date=date,
                completed=bool(completed),
                progress=progress,
                archived=bool(archived),
                exercises=entries_by_workout.get(wid, []),
            )
            for wid, name, description, date, completed, progress, archived in (
                await self.workouts.fetch_all_workouts()
            )
        ]
