"""
Session cookies — ``accessToken`` / ``refreshToken``, both httpOnly + secure.
"""

from __future__ import annotations

from fastapi import Response

from config.settings import Settings
from utils.schemas import TokenPair

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def _cookie_options(settings: Settings) -> dict:
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "domain": settings.cookie_domain,
        "path": "/",
    }


def set_token_cookies(response: Response, pair: TokenPair, settings: Settings) -> None:
    options = _cookie_options(settings)
    response.set_cookie(ACCESS_COOKIE, pair.access_token, **options)
    response.set_cookie(REFRESH_COOKIE, pair.refresh_token, **options)


def clear_token_cookies(response: Response, settings: Settings) -> None:
    """Both cookies always go together."""
    options = _cookie_options(settings)
    response.delete_cookie(ACCESS_COOKIE, **options)
    response.delete_cookie(REFRESH_COOKIE, **options)
