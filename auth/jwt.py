"""
JWT-style token creation and verification.

Tokens are base64url-encoded JSON payloads signed with HMAC-SHA256::

    <base64url(payload)>.<hex signature>

Access and refresh tokens are signed with two independent secrets
(``ACCESS_TOKEN_SECRET`` / ``REFRESH_TOKEN_SECRET``) so a leaked key for
one kind cannot forge the other.  Every token carries a random ``jti``,
which keeps two tokens minted in the same second distinct.
"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import json
import time
import uuid
from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Any, Dict, Mapping, Optional


class TokenInvalid(Exception):
    """Token could not be accepted."""


class TokenMalformed(TokenInvalid):
    """Bad structure, encoding, signature or claims."""


class TokenExpired(TokenInvalid):
    """Signature is valid but ``exp`` is in the past."""


def _b64encode(raw: bytes) -> str:
    return urlsafe_b64encode(raw).decode().rstrip("=")


def _b64decode(data: str) -> bytes:
    return urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _sign(secret: str, raw: bytes) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def create_token(
    claims: Mapping[str, Any],
    secret: str,
    expiry_seconds: int,
    *,
    now: Optional[float] = None,
) -> str:
    """Create a signed token containing ``claims`` plus iat / exp / jti."""
    issued_at = int(now if now is not None else time.time())
    payload = dict(claims)
    payload.update(
        iat=issued_at,
        exp=issued_at + expiry_seconds,
        jti=uuid.uuid4().hex,
    )
    raw = json.dumps(payload, separators=(",", ":")).encode()
    return _b64encode(raw) + "." + _sign(secret, raw)


def decode_token(token: str, secret: str, *, now: Optional[float] = None) -> Dict[str, Any]:
    """
    Verify token and return its claims.

    Raises ``TokenMalformed`` on structural / signature problems and
    ``TokenExpired`` once ``exp`` has passed.
    """
    parts = token.split(".", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise TokenMalformed("bad format")
    try:
        raw = _b64decode(parts[0])
    except (binascii.Error, ValueError) as exc:
        raise TokenMalformed("bad encoding") from exc

    # Bytes on both sides: compare_digest rejects non-ASCII str.
    if not hmac.compare_digest(parts[1].encode("utf-8"), _sign(secret, raw).encode("ascii")):
        raise TokenMalformed("bad signature")

    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise TokenMalformed("bad payload") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("exp"), int):
        raise TokenMalformed("missing expiry")

    current = now if now is not None else time.time()
    if payload["exp"] < current:
        raise TokenExpired("token expired")
    return payload


class TokenIssuer:
    """Mints and verifies access / refresh tokens."""

    def __init__(
        self,
        access_secret: str,
        access_expiry_seconds: int,
        refresh_secret: str,
        refresh_expiry_seconds: int,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("token secrets must be non-empty")
        if access_secret == refresh_secret:
            raise ValueError("access and refresh secrets must differ")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_expiry_seconds = access_expiry_seconds
        self.refresh_expiry_seconds = refresh_expiry_seconds

    @classmethod
    def from_settings(cls, settings) -> "TokenIssuer":
        return cls(
            access_secret=settings.access_token_secret,
            access_expiry_seconds=settings.access_token_expiry_seconds,
            refresh_secret=settings.refresh_token_secret,
            refresh_expiry_seconds=settings.refresh_token_expiry_seconds,
        )

    def issue_access_token(self, claims: Mapping[str, Any]) -> str:
        """Access token embedding ``{id, email, username, fullName}``."""
        payload = {
            "id": str(claims["id"]),
            "email": claims["email"],
            "username": claims["username"],
            "fullName": claims["fullName"],
        }
        return create_token(payload, self._access_secret, self.access_expiry_seconds)

    def issue_refresh_token(self, user_id: Any) -> str:
        """Refresh token embedding only ``{id}``."""
        return create_token(
            {"id": str(user_id)}, self._refresh_secret, self.refresh_expiry_seconds
        )

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self._access_secret)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self._refresh_secret)

    @staticmethod
    def _verify(token: str, secret: str) -> Dict[str, Any]:
        claims = decode_token(token, secret)
        if not isinstance(claims.get("id"), str):
            raise TokenMalformed("missing subject")
        return claims
