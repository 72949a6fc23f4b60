"""FastAPI routes for admin authentication."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from controllers.auth_controller import login, refresh, verify
from utils.errors import AuthError

router = APIRouter(tags=["auth"])


class LoginPayload(BaseModel):
	username: Optional[str] = None
	password: Optional[str] = None
	action: Optional[str] = None


@router.post("/admin-login")
async def admin_login_route(request: Request, payload: LoginPayload):
	"""Log in with admin credentials, or check a bearer token with `{"action": "verify"}`."""
	try:
		if payload.action == "verify":
			try:
				return await verify(request)
			except AuthError as exc:
				return JSONResponse(status_code=exc.status_code, content={"valid": False, "error": exc.detail})
		return await login(request, payload.username, payload.password)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("/refresh-token")
async def refresh_token_route(request: Request):
	try:
		return await refresh(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc
