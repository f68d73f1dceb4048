"""Durable stores that hold serialized backup files.

Two backends share one small interface:

- ``LocalObjectStore`` keeps each backup as a file inside a directory.
- ``S3ObjectStore`` keeps each backup as an object in an S3 compatible
  bucket, optionally under a key prefix.

Both raise ``AuthorizationError`` when the access policy refuses the
caller, ``BackupNotFoundError`` for unknown paths, and
``ObjectStoreError`` for every other failure.
"""

import asyncio
import datetime
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from errors import AuthorizationError, BackupNotFoundError, ObjectStoreError

logger = logging.getLogger(__name__)

DENIED_CODES = {"AccessDenied", "AllAccessDisabled", "Forbidden", "403"}
MISSING_CODES = {"NoSuchKey", "NotFound", "404"}


@dataclass
class StoredObject:
    """Listing entry for one stored object.

    ``path`` ends with ``/`` when the entry is a directory marker.
    """

    name: str
    path: str
    created_at: Optional[datetime.datetime] = None

    @property
    def is_directory(self) -> bool:
        return self.path.endswith("/")


class ObjectStore:
    """Interface for durable backup storage."""

    async def put(self, name: str, data: bytes) -> str:
        raise NotImplementedError()

    async def list(self) -> List[StoredObject]:
        raise NotImplementedError()

    async def get(self, path: str) -> bytes:
        raise NotImplementedError()


class LocalObjectStore(ObjectStore):
    """Stores backups as files in a directory."""

    def __init__(self, root: str = "backups") -> None:
        self.root = root

    def _resolve(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.dirname(full) != os.path.abspath(self.root):
            raise BackupNotFoundError(f"backup not found: {path}")
        return full

    def _put(self, name: str, data: bytes) -> str:
        full = self._resolve(name)
        try:
            os.makedirs(self.root, exist_ok=True)
            with open(full, "xb") as f:
                f.write(data)
        except PermissionError as e:
            raise AuthorizationError(f"write to {self.root} denied") from e
        except FileExistsError as e:
            raise ObjectStoreError(f"backup already exists: {name}") from e
        except OSError as e:
            raise ObjectStoreError(str(e)) from e
        return name

    def _list(self) -> List[StoredObject]:
        if not os.path.isdir(self.root):
            return []
        entries: List[StoredObject] = []
        try:
            with os.scandir(self.root) as it:
                for entry in it:
                    created = datetime.datetime.fromtimestamp(
                        entry.stat().st_mtime, datetime.timezone.utc
                    )
                    path = entry.name + "/" if entry.is_dir() else entry.name
                    entries.append(StoredObject(entry.name, path, created))
        except PermissionError as e:
            raise AuthorizationError(f"listing {self.root} denied") from e
        return entries

    def _get(self, path: str) -> bytes:
        full = self._resolve(path)
        try:
            with open(full, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise BackupNotFoundError(f"backup not found: {path}") from e
        except PermissionError as e:
            raise AuthorizationError(f"read of {path} denied") from e
        except OSError as e:
            raise ObjectStoreError(str(e)) from e

    async def put(self, name: str, data: bytes) -> str:
        return await asyncio.to_thread(self._put, name, data)

    async def list(self) -> List[StoredObject]:
        return await asyncio.to_thread(self._list)

    async def get(self, path: str) -> bytes:
        return await asyncio.to_thread(self._get, path)


class S3ObjectStore(ObjectStore):
    """Stores backups in an S3 compatible bucket via aiobotocore."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key

    def _key(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    def _relative(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix + "/"):
            return key[len(self.prefix) + 1 :]
        return key

    @asynccontextmanager
    async def _client(self):
        from aiobotocore.session import get_session

        client_kwargs = {"region_name": self.region}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id:
            client_kwargs["aws_access_key_id"] = self.access_key_id
            client_kwargs["aws_secret_access_key"] = self.secret_access_key
        async with get_session().create_client("s3", **client_kwargs) as client:
            yield client

    def _translate(self, error: Exception, action: str, path: str) -> ObjectStoreError:
        response = getattr(error, "response", None) or {}
        code = str(response.get("Error", {}).get("Code", ""))
        if code in DENIED_CODES:
            return AuthorizationError(f"{action} {path} denied by bucket policy")
        if code in MISSING_CODES:
            return BackupNotFoundError(f"backup not found: {path}")
        return ObjectStoreError(f"{action} {path} failed: {error}")

    async def put(self, name: str, data: bytes) -> str:
        from botocore.exceptions import BotoCoreError, ClientError

        key = self._key(name)
        try:
            async with self._client() as client:
                await client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=data,
                    ContentType="application/json",
                )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "upload", key) from e
        return name

    async def list(self) -> List[StoredObject]:
        from botocore.exceptions import BotoCoreError, ClientError

        entries: List[StoredObject] = []
        params = {"Bucket": self.bucket}
        if self.prefix:
            params["Prefix"] = self.prefix + "/"
        try:
            async with self._client() as client:
                paginator = client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(**params):
                    for obj in page.get("Contents", []):
                        path = self._relative(obj["Key"])
                        if not path:
                            continue
                        name = path.rstrip("/").rsplit("/", 1)[-1]
                        entries.append(
                            StoredObject(name, path, obj.get("LastModified"))
                        )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "list", self.bucket) from e
        return entries

    async def get(self, path: str) -> bytes:
        from botocore.exceptions import BotoCoreError, ClientError

        key = self._key(path)
        try:
            async with self._client() as client:
                response = await client.get_object(Bucket=self.bucket, Key=key)
                async with response["Body"] as stream:
                    return await stream.read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "download", key) from e


def build_object_store(settings: dict) -> ObjectStore:
    """Create the durable store named by the ``backup_store`` setting."""
    kind = settings.get("backup_store", "local")
    if kind == "s3":
        logger.debug("using S3 backup store %s", settings.get("s3_bucket"))
        return S3ObjectStore(
            settings.get("s3_bucket") or "exercise_backups",
            prefix=settings.get("s3_prefix") or "",
            region=settings.get("s3_region") or "us-east-1",
            endpoint_url=settings.get("s3_endpoint_url"),
            access_key_id=settings.get("s3_access_key_id"),
            secret_access_key=settings.get("s3_secret_access_key"),
        )
    if kind != "local":
        raise ValueError(f"unknown backup store: {kind}")
    return LocalObjectStore(settings.get("backup_dir") or "backups")
