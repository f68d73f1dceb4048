import datetime
import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from errors import SnapshotValidationError
from migrate import SCHEMA_VERSION, migrate_snapshot

FORMAT_VERSION = "2.0.0"
BACKUP_PREFIX = "complete-backup"


class SnapshotModel(BaseModel):
    """Base for entities carried inside a snapshot file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Category(SnapshotModel):
    id: str
    name: str
    color: Optional[str] = None


class Exercise(SnapshotModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class ExerciseSet(SnapshotModel):
    set_number: int = Field(alias="setNumber")
    weight: Optional[float] = None
    target_reps: int = Field(alias="targetReps")
    actual_reps: Optional[int] = Field(default=None, alias="actualReps")
    completed: bool = False
    notes: Optional[str] = None


class WorkoutExercise(SnapshotModel):
    id: str
    exercise_id: str = Field(alias="exerciseId")
    order: int = 0
    sets: List[ExerciseSet] = Field(default_factory=list)


class Workout(SnapshotModel):
    id: str
    name: str
    description: Optional[str] = None
    date: str
    completed: bool = False
    progress: Optional[int] = None
    archived: Optional[bool] = None
    exercises: List[WorkoutExercise] = Field(default_factory=list)


class Snapshot(SnapshotModel):
    """Versioned bundle of every backed-up entity."""

    exercises: List[Exercise]
    categories: List[Category]
    workouts: List[Workout] = Field(default_factory=list)
    timestamp: Optional[str] = None
    version: Optional[str] = None
    schema_version: Optional[str] = Field(default=None, alias="schemaVersion")

    def is_empty(self) -> bool:
        return not (self.exercises or self.categories or self.workouts)


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def iso_timestamp(moment: datetime.datetime) -> str:
    """Millisecond ISO-8601 timestamp in UTC with a ``Z`` suffix."""
    moment = moment.astimezone(datetime.timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _stamp(timestamp: str) -> str:
    return timestamp.replace(":", "-").replace(".", "-")


def file_stamp(moment: datetime.datetime) -> str:
    return _stamp(iso_timestamp(moment))


def backup_file_name(moment: datetime.datetime | str) -> str:
    """File name for a complete backup taken at ``moment``.

    ``moment`` may also be a snapshot's own ISO timestamp string.
    """
    stamp = _stamp(moment) if isinstance(moment, str) else file_stamp(moment)
    return f"{BACKUP_PREFIX}-{stamp}.json"


def is_complete_backup(name: str) -> bool:
    return "complete" in name.lower()


def new_snapshot(
    categories: List[Category],
    exercises: List[Exercise],
    workouts: List[Workout],
    moment: datetime.datetime,
) -> Snapshot:
    return Snapshot(
        exercises=exercises,
        categories=categories,
        workouts=workouts,
        timestamp=iso_timestamp(moment),
        version=FORMAT_VERSION,
        schema_version=SCHEMA_VERSION,
    )


def serialize_snapshot(snapshot: Snapshot) -> bytes:
    payload = snapshot.model_dump(by_alias=True)
    return json.dumps(payload, indent=2).encode("utf-8")


def parse_snapshot(data: bytes | str) -> Snapshot:
    """Parse snapshot JSON, raising ``SnapshotValidationError`` on bad input."""
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SnapshotValidationError("snapshot is not UTF-8 text") from e
    try:
        raw = json.loads(data)
    except json.JSONDecodeError as e:
        raise SnapshotValidationError(f"snapshot is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise SnapshotValidationError("snapshot must be a JSON object")
    missing = [key for key in ("exercises", "categories") if raw.get(key) is None]
    if missing:
        raise SnapshotValidationError(
            "invalid backup file format: missing " + ", ".join(missing)
        )
    raw = migrate_snapshot(raw)
    if raw.get("workouts") is None:
        raw["workouts"] = []
    try:
        return Snapshot.model_validate(raw)
    except ValidationError as e:
        raise SnapshotValidationError(str(e)) from e
