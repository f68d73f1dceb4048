import datetime
import json
from typing import Tuple

from snapshot import file_stamp, iso_timestamp, utc_now

SCHEMA_DOCUMENT_VERSION = "1.0.0"


def _col(name: str, type_: str, **extra) -> dict:
    col = {"name": name, "type": type_}
    col.update(extra)
    return col


_TABLES = {
    "exercises": [
        _col("id", "TEXT", primary=True),
        _col("name", "TEXT", nullable=False),
        _col("description", "TEXT", nullable=True),
        _col(
            "category",
            "TEXT",
            reference="categories.id",
            on_delete="SET NULL",
            nullable=True,
        ),
        _col("image_url", "TEXT", nullable=True),
        _col("created_at", "TEXT", nullable=False),
        _col("updated_at", "TEXT", nullable=True),
    ],
    "categories": [
        _col("id", "TEXT", primary=True),
        _col("name", "TEXT", nullable=False),
        _col("color", "TEXT", nullable=True),
        _col("created_at", "TEXT", nullable=False),
    ],
    "workouts": [
        _col("id", "TEXT", primary=True),
        _col("name", "TEXT", nullable=False),
        _col("description", "TEXT", nullable=True),
        _col("date", "TEXT", nullable=False),
        _col("completed", "INTEGER", nullable=False, default=0),
        _col("progress", "INTEGER", nullable=True),
        _col("archived", "INTEGER", nullable=False, default=0),
        _col("created_at", "TEXT", nullable=False),
    ],
    "workout_exercises": [
        _col("id", "TEXT", primary=True),
        _col(
            "workout_id",
            "TEXT",
            reference="workouts.id",
            on_delete="CASCADE",
            nullable=False,
        ),
        _col("exercise_id", "TEXT", reference="exercises.id", nullable=False),
        _col("order_index", "INTEGER", nullable=False),
    ],
    "exercise_sets": [
        _col("id", "TEXT", primary=True),
        _col(
            "workout_exercise_id",
            "TEXT",
            reference="workout_exercises.id",
            on_delete="CASCADE",
            nullable=False,
        ),
        _col("set_number", "INTEGER", nullable=False),
        _col("weight", "REAL", nullable=True),
        _col("target_reps", "INTEGER", nullable=False),
        _col("actual_reps", "INTEGER", nullable=True),
        _col("completed", "INTEGER", nullable=False, default=0),
        _col("notes", "TEXT", nullable=True),
    ],
}


_INDEXES = [
    {"name": "exercises_name_idx", "table": "exercises", "columns": ["name"]},
    {"name": "categories_name_idx", "table": "categories", "columns": ["name"]},
    {"name": "workouts_date_idx", "table": "workouts", "columns": ["date"]},
]


def describe_schema(moment: datetime.datetime | None = None) -> dict:
    """Hand maintained description of the SQLite layout created by ``db.Database``.

    Booleans are stored as ``INTEGER`` 0/1 and timestamps as ISO-8601 ``TEXT``.
    """
    moment = moment or utc_now()
    return {
        "tables": {
            name: {"columns": [dict(c) for c in cols]} for name, cols in _TABLES.items()
        },
        "indexes": [dict(i, columns=list(i["columns"])) for i in _INDEXES],
        "version": SCHEMA_DOCUMENT_VERSION,
        "generated_at": iso_timestamp(moment),
    }


def schema_file_name(moment: datetime.datetime) -> str:
    return f"fitness-app-schema-{file_stamp(moment)}.json"


def export_schema(moment: datetime.datetime | None = None) -> Tuple[str, bytes]:
    """Return the download file name and serialized schema document."""
    moment = moment or utc_now()
    data = json.dumps(describe_schema(moment), indent=2).encode("utf-8")
    return schema_file_name(moment), data
