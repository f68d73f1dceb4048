from errors import SnapshotValidationError

SCHEMA_VERSION = "1.0.0"


def _upgrade_legacy(data: dict) -> dict:
    """Catalog-only backups written before workouts were included."""
    out = dict(data)
    out.setdefault("workouts", [])
    out["schemaVersion"] = "1.0.0"
    return out


MIGRATIONS = {
    None: _upgrade_legacy,
}


def migrate_snapshot(data: dict) -> dict:
    """Upgrade a raw snapshot document to ``SCHEMA_VERSION``."""
    version = data.get("schemaVersion")
    seen = set()
    while version != SCHEMA_VERSION:
        step = MIGRATIONS.get(version)
        if step is None or version in seen:
            raise SnapshotValidationError(
                f"unsupported snapshot schema version: {version}"
            )
        seen.add(version)
        data = step(data)
        version = data.get("schemaVersion")
    return data
