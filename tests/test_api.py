import json
import os
import sys
import unittest

from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import AuthorizationError
from object_store import LocalObjectStore, ObjectStore
from rest_api import BackupAPI


SNAPSHOT = {
    "categories": [{"id": "cat-1", "name": "Chest", "color": "#ff4757"}],
    "exercises": [
        {"id": "ex-1", "name": "Bench Press", "category": "cat-1", "imageUrl": ""}
    ],
    "workouts": [
        {
            "id": "w-1",
            "name": "Push day",
            "date": "2024-03-01",
            "completed": True,
            "progress": 100,
            "exercises": [
                {
                    "id": "we-1",
                    "exerciseId": "ex-1",
                    "order": 0,
                    "sets": [{"setNumber": 1, "weight": 80, "targetReps": 8, "completed": True}],
                }
            ],
        }
    ],
    "schemaVersion": "1.0.0",
}


class DenyingObjectStore(ObjectStore):
    async def put(self, name: str, data: bytes) -> str:
        raise AuthorizationError("new row violates row-level security policy")

    async def list(self):
        return []

    async def get(self, path: str) -> bytes:
        raise AuthorizationError("denied")


class BackupAPITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_backup_api.db"
        self.yaml_path = "test_backup_api.yaml"
        self.backup_dir = "test_backup_api_files"
        self._cleanup()
        self.api = BackupAPI(
            db_path=self.db_path,
            yaml_path=self.yaml_path,
            object_store=LocalObjectStore(self.backup_dir),
        )
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        self._cleanup()

    def _cleanup(self) -> None:
        for p in [self.db_path, self.yaml_path]:
            if os.path.exists(p):
                os.remove(p)
        if os.path.isdir(self.backup_dir):
            for name in os.listdir(self.backup_dir):
                os.remove(os.path.join(self.backup_dir, name))
            os.rmdir(self.backup_dir)

    def _restore(self, payload: dict):
        return self.client.post(
            "/restore",
            content=json.dumps(payload),
            headers={"Content-Type": "application/json"},
        )

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_backup_of_empty_store_is_noop(self) -> None:
        response = self.client.post("/backups")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "empty")
        self.assertEqual(self.client.get("/backups").json(), [])

    def test_restore_backup_list_download_cycle(self) -> None:
        response = self._restore(SNAPSHOT)
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["workouts"], ["w-1"])
        self.assertEqual(body["failed"], [])

        response = self.client.post("/backups")
        self.assertEqual(response.json()["status"], "stored")
        path = response.json()["path"]

        entries = self.client.get("/backups").json()
        self.assertEqual([e["path"] for e in entries], [path])
        self.assertTrue(entries[0]["complete"])

        response = self.client.get(f"/backups/{path}")
        self.assertEqual(response.status_code, 200)
        self.assertIn(path, response.headers["content-disposition"])
        self.assertEqual(response.json()["categories"], SNAPSHOT["categories"])

        response = self.client.post(f"/backups/{path}/restore")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["workouts_deleted"], 1)

    def test_restore_rejects_non_json_upload(self) -> None:
        response = self.client.post(
            "/restore",
            content=json.dumps(SNAPSHOT),
            headers={"Content-Type": "text/plain"},
        )
        self.assertEqual(response.status_code, 415)

    def test_restore_rejects_invalid_snapshot(self) -> None:
        response = self._restore({"exercises": []})
        self.assertEqual(response.status_code, 400)
        self.assertIn("categories", response.json()["detail"])

    def test_restore_with_dangling_category_fails(self) -> None:
        payload = dict(SNAPSHOT, categories=[])
        response = self._restore(payload)
        self.assertEqual(response.status_code, 500)

    def test_partial_failures_are_reported(self) -> None:
        payload = json.loads(json.dumps(SNAPSHOT))
        payload["workouts"][0]["exercises"][0]["exerciseId"] = "ex-unknown"
        body = self._restore(payload).json()
        self.assertTrue(body["success"])
        self.assertEqual(
            [(f["kind"], f["id"]) for f in body["failed"]],
            [("workout_exercise", "we-1")],
        )

    def test_unknown_backup_is_404(self) -> None:
        self.assertEqual(self.client.get("/backups/missing.json").status_code, 404)
        self.assertEqual(
            self.client.post("/backups/missing.json/restore").status_code, 404
        )

    def test_schema_download(self) -> None:
        response = self.client.get("/schema")
        self.assertEqual(response.status_code, 200)
        self.assertIn("fitness-app-schema-", response.headers["content-disposition"])
        self.assertIn("workout_exercises", response.json()["tables"])


class FallbackAPITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_backup_fallback.db"
        self.yaml_path = "test_backup_fallback.yaml"
        for p in [self.db_path, self.yaml_path]:
            if os.path.exists(p):
                os.remove(p)
        self.api = BackupAPI(
            db_path=self.db_path,
            yaml_path=self.yaml_path,
            object_store=DenyingObjectStore(),
        )
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        for p in [self.db_path, self.yaml_path]:
            if os.path.exists(p):
                os.remove(p)

    def test_denied_write_returns_local_download(self) -> None:
        self.client.post(
            "/restore",
            content=json.dumps(SNAPSHOT),
            headers={"Content-Type": "application/json"},
        )
        response = self.client.post("/backups")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["x-backup-fallback"], "local")
        self.assertIn("complete-backup-", response.headers["content-disposition"])
        self.assertEqual(response.json()["exercises"][0]["id"], "ex-1")

    def test_denied_download_is_server_error(self) -> None:
        self.assertEqual(self.client.get("/backups/a.json").status_code, 500)


if __name__ == "__main__":
    unittest.main()
