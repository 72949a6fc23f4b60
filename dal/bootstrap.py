"""First-run initialization of the metadata store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict

from dal.folder_dal import FolderDAL
from dal.image_dal import CATEGORIES_KEY, STATS_KEY
from dal.kv_store import KVStore
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)

INITIALIZED_KEY = "imgbed:initialized"
DEFAULT_CATEGORY = "general"


async def initialize_store(kv: KVStore) -> bool:
    """Seed the default category, zeroed stats and the bootstrap folders.

    Safe to call on every startup: seeding runs once, the bootstrap folders
    are re-created whenever they are missing. Returns True when seeding ran.
    """
    await FolderDAL(kv).ensure_bootstrap_folders()

    if await kv.get(INITIALIZED_KEY):
        return False

    await kv.sadd(CATEGORIES_KEY, DEFAULT_CATEGORY)
    stats: Dict[str, object] = {"totalImages": 0, "totalSize": 0}
    existing = await kv.hgetall(STATS_KEY)
    stats.update({k: v for k, v in existing.items() if k in stats})
    stats["lastInitDate"] = datetime.now(timezone.utc).isoformat()
    await kv.hset(STATS_KEY, stats)
    await kv.set(INITIALIZED_KEY, "true")
    LOGGER.info("Metadata store initialized")
    return True


async def reset_store(db_initializer: AsyncDatabaseInitializer, kv: KVStore) -> None:
    """Delete everything, then seed again."""
    LOGGER.warning("Resetting metadata store at %s", db_initializer.db_path)
    await db_initializer.reset()
    await initialize_store(kv)
