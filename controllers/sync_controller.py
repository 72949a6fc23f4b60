"""Telegram synchronization endpoints."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from controllers.app_state import get_image_dal, get_telegram_client
from services.reconciler import TelegramReconciler, sync_status
from services.telegram.media_fetcher import MediaFetcher


async def get_status(request: Request) -> Dict[str, Any]:
    return await sync_status(get_image_dal(request))


async def run_sync(request: Request, force_full: bool = False) -> Dict[str, Any]:
    """Run one reconciliation pass against the configured chat."""
    client = get_telegram_client(request)
    image_dal = get_image_dal(request)
    reconciler = TelegramReconciler(image_dal, MediaFetcher(client, image_dal))

    result = await reconciler.run(force_full=force_full)
    message = (
        f"Sync finished: {result.inserted} new images added to the root folder, "
        f"{result.skipped} already present, {result.deleted} removed"
    )
    return {"success": True, "message": message, **result.to_dict()}


async def rebuild_indexes(request: Request) -> Dict[str, Any]:
    """Recompute the reverse file-id index, the membership set and the counters."""
    image_dal = get_image_dal(request)
    index = await image_dal.rebuild_external_index()
    stats = await image_dal.recompute_stats()
    return {"success": True, "message": "Indexes rebuilt", "index": index, "stats": stats}
