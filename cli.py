import argparse
import asyncio
import logging
import os
import sys

from backup_service import BackupService
from config import YamlConfig
from db import EntityStore
from errors import BackupError
from object_store import build_object_store
from restore_service import RestoreService
from schema_export import export_schema
from seed_sample_data import seed

logger = logging.getLogger(__name__)


def _write(out_dir: str, file_name: str, data: bytes) -> str:
    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, file_name)
    with open(out_path, "wb") as f:
        f.write(data)
    return out_path


async def create_backup(settings: dict, out_dir: str = ".") -> int:
    service = BackupService(
        EntityStore(settings["db_path"]), build_object_store(settings)
    )
    result = await service.create_backup()
    if result is None:
        print("No data to backup")
    elif result.is_local:
        path = _write(out_dir, result.file_name, result.local_bytes())
        print(f"Storage refused the backup, saved local copy to {path}")
    else:
        print(f"Backup stored at {result.path}")
    return 0


async def list_backups(settings: dict) -> int:
    service = BackupService(
        EntityStore(settings["db_path"]), build_object_store(settings)
    )
    entries = await service.list_backups()
    if not entries:
        print("No backups found")
    for entry in entries:
        kind = "complete" if entry.complete else "exercises"
        print(f"{entry.created_at}  {kind:<9}  {entry.path}")
    return 0


async def download_backup(settings: dict, path: str, out_dir: str = ".") -> int:
    service = BackupService(
        EntityStore(settings["db_path"]), build_object_store(settings)
    )
    data = await service.download_backup(path)
    out_path = _write(out_dir, os.path.basename(path) or "exercise-backup.json", data)
    print(f"Backup downloaded to {out_path}")
    return 0


async def restore_backup(settings: dict, file_path: str) -> int:
    if not file_path.lower().endswith(".json"):
        print("Please select a JSON backup file", file=sys.stderr)
        return 1
    with open(file_path, "rb") as f:
        data = f.read()
    result = await RestoreService(EntityStore(settings["db_path"])).restore(data)
    print(result.summary())
    for failure in result.failed:
        print(f"  failed {failure.kind} {failure.id}: {failure.reason}")
    return 0


def download_schema(out_dir: str = ".") -> int:
    file_name, data = export_schema()
    print(f"Schema written to {_write(out_dir, file_name, data)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Backup and restore commands")
    parser.add_argument("--settings", default="settings.yaml")
    sub = parser.add_subparsers(dest="cmd", required=True)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default=".")

    sub.add_parser("list")

    dl = sub.add_parser("download")
    dl.add_argument("path")
    dl.add_argument("--out", default=".")

    rst = sub.add_parser("restore")
    rst.add_argument("file")

    sch = sub.add_parser("schema")
    sch.add_argument("--out", default=".")

    sub.add_parser("seed")

    args = parser.parse_args(argv)
    settings = YamlConfig(args.settings).settings()
    logging.basicConfig(level=settings["log_level"])

    try:
        if args.cmd == "backup":
            return asyncio.run(create_backup(settings, args.out))
        elif args.cmd == "list":
            return asyncio.run(list_backups(settings))
        elif args.cmd == "download":
            return asyncio.run(download_backup(settings, args.path, args.out))
        elif args.cmd == "restore":
            return asyncio.run(restore_backup(settings, args.file))
        elif args.cmd == "schema":
            return download_schema(args.out)
        else:
            asyncio.run(seed(EntityStore(settings["db_path"])))
            return 0
    except BackupError as e:
        logger.error("%s failed: %s", args.cmd, e)
        print(f"{args.cmd} failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
