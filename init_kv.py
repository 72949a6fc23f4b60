"""Maintenance commands for the image bed's metadata store.

It uses the same `DATABASE_DIR` behavior as the application via
`utils.database_init.AsyncDatabaseInitializer`.

Run: `python init_kv.py init` (the default), or one of
`reset`, `rebuild-index`, `recompute-stats`, `dump`.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from dal.bootstrap import initialize_store, reset_store
from dal.folder_dal import FolderDAL
from dal.image_dal import ImageDAL
from dal.kv_store import KVStore
from utils.database_init import AsyncDatabaseInitializer
from utils.logging_config import setup_logging

LOGGER = logging.getLogger("init_kv")


async def _dump(image_dal: ImageDAL, folder_dal: FolderDAL) -> None:
    """Print stats, folders and every image record as JSON lines."""
    print(json.dumps({"stats": await image_dal.get_stats(), "categories": await image_dal.get_categories()}))
    for folder in await folder_dal.list_folders():
        print(json.dumps({"folder": folder.to_dict()}, ensure_ascii=False))
    for record in await image_dal.all_images():
        print(json.dumps({"image": record.to_dict()}, ensure_ascii=False))


async def run(command: str, db_dir: Optional[str] = None) -> int:
    db_initializer = AsyncDatabaseInitializer(db_dir)
    await db_initializer.ensure_database()
    kv = KVStore(db_initializer)
    image_dal = ImageDAL(kv)

    if command == "init":
        seeded = await initialize_store(kv)
        LOGGER.info("Store %s at %s", "initialized" if seeded else "already initialized", db_initializer.db_path)
    elif command == "reset":
        await reset_store(db_initializer, kv)
    elif command == "rebuild-index":
        result = await image_dal.rebuild_external_index()
        LOGGER.info("Indexed %d file ids, removed %d stale keys", result["indexed"], result["removedKeys"])
    elif command == "recompute-stats":
        stats = await image_dal.recompute_stats()
        LOGGER.info("Stats: %s", stats)
    elif command == "dump":
        await _dump(image_dal, FolderDAL(kv))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Manage the image bed metadata store")
    parser.add_argument(
        "command",
        nargs="?",
        default="init",
        choices=["init", "reset", "rebuild-index", "recompute-stats", "dump"],
        help="Operation to run (default: init)",
    )
    parser.add_argument("--db-dir", default=None, help="Database directory (default: $DATABASE_DIR)")
    parser.add_argument("--yes", action="store_true", help="Confirm destructive commands such as reset")
    args = parser.parse_args(argv)

    load_dotenv()
    setup_logging("INFO")

    if args.command == "reset" and not args.yes:
        parser.error("reset deletes every record; pass --yes to confirm")

    return asyncio.run(run(args.command, args.db_dir))


if __name__ == "__main__":
    sys.exit(main())
