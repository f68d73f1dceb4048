import requests
from typing import Optional


class BackupClient:
    """Simple REST client for the backup API."""

    def __init__(self, base_url: str = "http://localhost:8000", session=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def create_backup(self) -> dict:
        """Create a backup.

        Returns ``{"status": "local", "file_name": ..., "data": ...}`` when
        the server hands the backup back for local saving.
        """
        resp = self.session.post(f"{self.base_url}/backups")
        resp.raise_for_status()
        if resp.headers.get("X-Backup-Fallback") == "local":
            disposition = resp.headers.get("Content-Disposition", "")
            file_name = disposition.split("filename=")[-1] if "filename=" in disposition else "backup.json"
            return {"status": "local", "file_name": file_name, "data": resp.content}
        return resp.json()

    def list_backups(self) -> list:
        resp = self.session.get(f"{self.base_url}/backups")
        resp.raise_for_status()
        return resp.json()

    def download_backup(self, path: str) -> bytes:
        resp = self.session.get(f"{self.base_url}/backups/{path}")
        resp.raise_for_status()
        return resp.content

    def restore(self, data: bytes, content_type: str = "application/json") -> dict:
        resp = self.session.post(
            f"{self.base_url}/restore",
            data=data,
            headers={"Content-Type": content_type},
        )
        resp.raise_for_status()
        return resp.json()

    def restore_stored(self, path: str) -> dict:
        resp = self.session.post(f"{self.base_url}/backups/{path}/restore")
        resp.raise_for_status()
        return resp.json()

    def download_schema(self, dest: Optional[str] = None) -> bytes:
        resp = self.session.get(f"{self.base_url}/schema")
        resp.raise_for_status()
        if dest:
            with open(dest, "wb") as f:
                f.write(resp.content)
        return resp.content
