from typing import Literal, Optional

from pydantic import BaseModel, ValidationError


class SettingsSchema(BaseModel):
    db_path: str = "workout.db"
    backup_store: Literal["local", "s3"] = "local"
    backup_dir: str = "backups"
    s3_bucket: str = "exercise_backups"
    s3_prefix: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint_url: Optional[str] = None
    s3_access_key_id: Optional[str] = None
    s3_secret_access_key: Optional[str] = None
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def validate_settings(data: dict) -> dict:
    try:
        return SettingsSchema(**data).model_dump()
    except ValidationError as e:
        raise ValueError(str(e))
