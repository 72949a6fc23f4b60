"""HMAC-SHA256 signed admin tokens.

A token is `base64url(header).base64url(claims).base64url(signature)` with
padding stripped; the claims carry `iat`, `exp`, `role` and `username`.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, Optional

from utils.errors import AuthError, ForbiddenError

TOKEN_TTL_SECONDS = 24 * 60 * 60
ADMIN_ROLE = "admin"

_HEADER = {"alg": "HS256", "typ": "JWT"}


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


class TokenService:
    """Issue and verify signed tokens.

    Args:
        secret: Signing secret.
        ttl_seconds: Validity of a freshly issued token.
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(self, secret: str, ttl_seconds: int = TOKEN_TTL_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self._secret = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _sign(self, signing_input: str) -> str:
        digest = hmac.new(self._secret, signing_input.encode("ascii"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def issue(self, claims: Dict[str, Any]) -> str:
        """Sign `claims` with fresh `iat`/`exp` values."""
        now = int(self._clock())
        payload = {**claims, "iat": now, "exp": now + self.ttl_seconds}
        header = _b64url_encode(json.dumps(_HEADER, separators=(",", ":")).encode("utf-8"))
        body = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        signing_input = f"{header}.{body}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def verify(self, token: str) -> Dict[str, Any]:
        """Return the claims of a well-formed, correctly signed, unexpired token.

        Raises:
            AuthError: For any malformed, tampered or expired token.
        """
        parts = (token or "").split(".")
        if len(parts) != 3:
            raise AuthError("Invalid token format")

        try:
            expected = self._sign(f"{parts[0]}.{parts[1]}")
        except UnicodeEncodeError as exc:
            raise AuthError("Invalid token format") from exc
        if not hmac.compare_digest(parts[2].encode("ascii", "replace"), expected.encode("ascii")):
            raise AuthError("Invalid token signature")

        try:
            claims = json.loads(_b64url_decode(parts[1]))
        except ValueError as exc:
            raise AuthError("Invalid token payload") from exc
        if not isinstance(claims, dict):
            raise AuthError("Invalid token payload")

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or self._clock() >= exp:
            raise AuthError("Token expired")
        return claims

    def verify_admin(self, token: str) -> Dict[str, Any]:
        claims = self.verify(token)
        if claims.get("role") != ADMIN_ROLE:
            raise ForbiddenError("Access denied: admin role required")
        return claims

    def refresh(self, token: str) -> str:
        """Reissue an admin token with the same identity and a fresh expiry."""
        claims = self.verify_admin(token)
        return self.issue({"username": claims.get("username"), "role": claims.get("role")})


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if not authorization:
        raise AuthError("Authorization header is missing")
    if not authorization.startswith("Bearer "):
        raise AuthError("Invalid authorization header format")
    return authorization[len("Bearer "):].strip()
