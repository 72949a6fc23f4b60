"""FastAPI routes for Telegram synchronization."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.auth_controller import require_admin
from controllers.sync_controller import get_status, rebuild_indexes, run_sync
from utils.errors import ValidationError

router = APIRouter(prefix="/sync-telegram", tags=["sync"])


class SyncPayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	action: str = "sync"
	force_full: bool = Field(False, alias="forceFull")


@router.get("")
async def sync_status_route(request: Request, action: Optional[str] = None):
	try:
		if action != "status":
			raise ValidationError("Unsupported action; use ?action=status or POST to run a sync")
		return await get_status(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("")
async def sync_route(request: Request, payload: Optional[SyncPayload] = None):
	"""Run one reconciliation pass, or rebuild the indexes with `{"action": "rebuild"}`."""
	payload = payload or SyncPayload()
	try:
		require_admin(request)
		if payload.action == "rebuild":
			return await rebuild_indexes(request)
		if payload.action != "sync":
			raise ValidationError(f"Unsupported action: {payload.action}")
		return await run_sync(request, force_full=payload.force_full)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc
