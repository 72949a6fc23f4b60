"""Admin login, token verification and refresh."""

from __future__ import annotations

import hmac
from typing import Any, Dict, Optional

from fastapi import Request

from controllers.app_state import get_settings, get_token_service
from services.auth.token_service import ADMIN_ROLE, bearer_token
from utils.errors import AuthError, ValidationError


def require_admin(request: Request) -> Dict[str, Any]:
    """Return the claims of the request's admin token.

    Raises:
        AuthError: Missing, malformed, tampered or expired token (401).
        ForbiddenError: Valid token without the admin role (403).
    """
    token = bearer_token(request.headers.get("authorization"))
    return get_token_service(request).verify_admin(token)


def is_admin_request(request: Request) -> bool:
    """True when the request carries a valid admin token; never raises `AuthError`."""
    header = request.headers.get("authorization")
    if not header or not header.startswith("Bearer "):
        return False
    try:
        require_admin(request)
    except AuthError:
        return False
    return True


def _credentials_match(request: Request, username: str, password: str) -> bool:
    settings = get_settings(request)
    expected_password = settings.require_admin_password()
    user_ok = hmac.compare_digest(username.encode("utf-8"), settings.admin_username.encode("utf-8"))
    password_ok = hmac.compare_digest(password.encode("utf-8"), expected_password.encode("utf-8"))
    return user_ok and password_ok


async def login(request: Request, username: Optional[str], password: Optional[str]) -> Dict[str, Any]:
    """Exchange admin credentials for a 24-hour token."""
    if not username or not password:
        raise ValidationError("Username and password are required")

    tokens = get_token_service(request)
    if not _credentials_match(request, username, password):
        raise AuthError("Invalid credentials")

    token = tokens.issue({"username": username, "role": ADMIN_ROLE})
    return {"success": True, "token": token, "expiresIn": "24h"}


async def verify(request: Request) -> Dict[str, Any]:
    """Check the bearer token of the request."""
    claims = require_admin(request)
    return {"valid": True, "message": "Token is valid", "payload": claims}


async def refresh(request: Request) -> Dict[str, Any]:
    """Reissue the caller's token with a fresh expiry."""
    token = bearer_token(request.headers.get("authorization"))
    new_token = get_token_service(request).refresh(token)
    return {"success": True, "message": "Token refreshed", "token": new_token, "expiresIn": "24h"}
