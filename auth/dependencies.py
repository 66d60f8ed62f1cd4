"""
FastAPI dependencies for authentication.

Services are built once in ``main.create_app`` and hung on ``app.state``;
these dependencies hand them to route handlers.  ``get_current_user_id``
guards every route that needs a logged-in user.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from auth.cookies import ACCESS_COOKIE
from auth.jwt import TokenInvalid, TokenIssuer
from config.settings import Settings
from core.errors import AuthError
from core.profile import ProfileService
from core.session_manager import SessionManager


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_profile_service(request: Request) -> ProfileService:
    return request.app.state.profile_service


async def get_current_user_id(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """
    Verify the access token from the ``accessToken`` cookie or the Bearer
    header and return the authenticated ``user_id`` (UUID string).
    """
    token = request.cookies.get(ACCESS_COOKIE)
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[7:]
    if not token:
        raise AuthError("Unauthorized request")

    issuer: TokenIssuer = request.app.state.token_issuer
    try:
        claims = issuer.verify_access_token(token)
    except TokenInvalid as exc:
        raise AuthError("Invalid access token") from exc
    return claims["id"]
