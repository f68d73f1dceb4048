import logging

from fastapi import FastAPI, HTTPException, Request, Response

from backup_service import BackupService
from config import YamlConfig
from db import EntityStore
from errors import (
    BackupNotFoundError,
    FatalStoreError,
    ObjectStoreError,
    SnapshotValidationError,
)
from object_store import ObjectStore, build_object_store
from restore_service import RestoreService
from schema_export import export_schema

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPES = {"application/json", "text/json"}


def _attachment(data: bytes, file_name: str, **headers: str) -> Response:
    return Response(
        content=data,
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename={file_name}", **headers},
    )


class BackupAPI:
    """Provides REST endpoints for backing up and restoring workout data."""

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "settings.yaml",
        *,
        object_store: ObjectStore | None = None,
    ) -> None:
        self.settings = YamlConfig(yaml_path).settings()
        self.db_path = db_path or self.settings["db_path"]
        self.store = EntityStore(self.db_path)
        self.object_store = object_store or build_object_store(self.settings)
        self.backups = BackupService(self.store, self.object_store)
        self.restorer = RestoreService(self.store)
        self.app = FastAPI(
            title="LiftVault API",
            description="Backup and restore for workout data",
        )
        self._setup_routes()

    async def _restore(self, data: bytes) -> dict:
        try:
            result = await self.restorer.restore(data)
        except SnapshotValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except FatalStoreError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return result.to_dict()

    def _setup_routes(self) -> None:
        @self.app.get("/health")
        async def health():
            try:
                await self.store.categories.fetch_all_categories()
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.post(
            "/backups",
            summary="Create backup",
            description="Store a complete backup, or return it for local download when the store refuses the write.",
        )
        async def create_backup():
            try:
                result = await self.backups.create_backup()
            except ObjectStoreError as e:
                raise HTTPException(status_code=500, detail=f"Backup failed: {e}")
            if result is None:
                return {"status": "empty", "message": "No data to backup"}
            if result.is_local:
                return _attachment(
                    result.local_bytes(),
                    result.file_name,
                    **{"X-Backup-Fallback": "local"},
                )
            return {"status": "stored", "path": result.path}

        @self.app.get("/backups")
        async def list_backups():
            try:
                entries = await self.backups.list_backups()
            except ObjectStoreError as e:
                raise HTTPException(status_code=500, detail=f"Failed to list backups: {e}")
            return [e.to_dict() for e in entries]

        @self.app.get("/backups/{path:path}")
        async def download_backup(path: str):
            try:
                data = await self.backups.download_backup(path)
            except BackupNotFoundError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ObjectStoreError as e:
                raise HTTPException(status_code=500, detail=f"Failed to download backup: {e}")
            return _attachment(data, path.rsplit("/", 1)[-1] or "exercise-backup.json")

        @self.app.post("/backups/{path:path}/restore")
        async def restore_stored_backup(path: str):
            try:
                data = await self.backups.download_backup(path)
            except BackupNotFoundError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except ObjectStoreError as e:
                raise HTTPException(status_code=500, detail=f"Failed to download backup: {e}")
            return await self._restore(data)

        @self.app.post("/restore")
        async def restore_upload(request: Request):
            media_type = request.headers.get("content-type", "").split(";")[0].strip()
            if media_type not in JSON_MEDIA_TYPES:
                raise HTTPException(status_code=415, detail="Please select a JSON backup file")
            return await self._restore(await request.body())

        @self.app.get("/schema")
        async def download_schema():
            file_name, data = export_schema()
            return _attachment(data, file_name)


if __name__ == "__main__":
    import uvicorn

    api = BackupAPI()
    logging.basicConfig(level=api.settings["log_level"])
    uvicorn.run(api.app)
