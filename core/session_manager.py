"""
SessionManager — registration, login, logout, refresh-token rotation and
password change.

A user's session is either anonymous or authenticated.  The only
server-side session state is ``User.refresh_token``: one live refresh
token per user.  Login overwrites it, refresh swaps it atomically for a
new one, logout clears it.  Any refresh token that is not exactly the
stored value is rejected, which is what makes logout and rotation stick.

Password change re-hashes but does not rotate tokens; sessions opened
before the change stay valid until their tokens expire.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.jwt import TokenInvalid, TokenIssuer
from auth.password import BCRYPT_ROUNDS, hash_password_async, verify_password_async
from connectors.base import BaseUploader, UploadResult
from core.errors import (
    AuthError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from database.models import User
from database.user_store import UserStore
from utils.schemas import LoginResult, TokenPair, UserOut

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def _access_claims(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "username": user.username,
        "fullName": user.full_name,
    }


class SessionManager:
    """Authentication and session lifecycle for user accounts."""

    def __init__(
        self,
        store: UserStore,
        issuer: TokenIssuer,
        uploader: BaseUploader,
        *,
        password_rounds: int = BCRYPT_ROUNDS,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._uploader = uploader
        self._password_rounds = password_rounds

    # ── Registration ────────────────────────────────────────────────────

    async def register(
        self,
        full_name: Optional[str],
        email: Optional[str],
        username: Optional[str],
        password: Optional[str],
        avatar_path: Optional[str],
        cover_image_path: Optional[str] = None,
    ) -> UserOut:
        """
        Create a new account.

        Uniqueness is checked before anything is uploaded so a rejected
        registration leaves no media behind.  The unique constraints in the
        store still have the final word; if a concurrent registration wins
        the race after our upload, the uploaded files are deleted again.
        """
        full_name = _clean(full_name)
        email = _clean(email).lower()
        username = _clean(username).lower()
        if not (full_name and email and username and _clean(password)):
            raise ValidationError("All fields are required")
        if not avatar_path:
            raise ValidationError("Avatar file is required")

        if await self._store.find_by_email(email) is not None:
            logger.info("register rejected: email taken (%s)", email)
            raise ConflictError("Email")
        if await self._store.find_by_username(username) is not None:
            logger.info("register rejected: username taken (%s)", username)
            raise ConflictError("Username")

        avatar = await self._uploader.upload(avatar_path)
        cover: Optional[UploadResult] = None
        if cover_image_path:
            try:
                cover = await self._uploader.upload(cover_image_path)
            except DependencyError as exc:
                logger.warning("register: cover image upload failed for %s: %s", username, exc)

        password_hash = await hash_password_async(password, self._password_rounds)
        try:
            user = await self._store.create(
                username=username,
                email=email,
                full_name=full_name.lower(),
                avatar=avatar.url,
                cover_image=cover.url if cover else None,
                password_hash=password_hash,
            )
        except ConflictError:
            logger.warning("register: lost uniqueness race for %s, removing uploads", username)
            await self._discard(avatar, cover)
            raise

        logger.info("Registered user %s (%s)", user.username, user.id)
        return UserOut.from_user(user)

    async def _discard(self, *uploads: Optional[UploadResult]) -> None:
        for upload in uploads:
            if upload is not None and upload.public_id:
                await self._uploader.delete(upload.public_id)

    # ── Login / logout ──────────────────────────────────────────────────

    async def login(
        self,
        password: Optional[str],
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> LoginResult:
        """
        Check credentials and open a session.

        The new refresh token replaces whatever was stored, so any other
        session of the same user can no longer refresh.
        """
        username = _clean(username).lower() or None
        email = _clean(email).lower() or None
        if username is None and email is None:
            raise ValidationError("Username or email is required")
        if not password:
            raise ValidationError("Password is required")

        user = await self._store.find_by_username_or_email(username, email)
        if user is None:
            logger.info("login: no user for %s", username or email)
            raise NotFoundError("User does not exist")

        if not await verify_password_async(password, user.password_hash):
            logger.warning("login: bad password for user %s", user.id)
            raise AuthError("Invalid user credentials")

        pair = await self._issue_pair(user)
        if not await self._store.set_refresh_token(user.id, pair.refresh_token):
            raise NotFoundError("User does not exist")

        logger.info("Login: %s (%s)", user.username, user.id)
        return LoginResult(
            user=UserOut.from_user(user),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    async def logout(self, user_id: str) -> None:
        """Forget the stored refresh token.  Safe to call repeatedly."""
        await self._store.set_refresh_token(user_id, None)
        logger.info("Logout: %s", user_id)

    # ── Refresh ─────────────────────────────────────────────────────────

    async def refresh(self, presented_refresh_token: Optional[str]) -> TokenPair:
        """Trade a live refresh token for a new access + refresh pair."""
        if not presented_refresh_token:
            raise AuthError("Unauthorized request")

        try:
            claims = self._issuer.verify_refresh_token(presented_refresh_token)
        except TokenInvalid as exc:
            logger.info("refresh: rejected token (%s)", exc)
            raise AuthError("Invalid refresh token") from exc

        user = await self._store.find_by_id(claims["id"])
        if user is None:
            logger.info("refresh: token subject %s not found", claims["id"])
            raise AuthError("Invalid refresh token")

        if user.refresh_token != presented_refresh_token:
            logger.warning("refresh: stale refresh token for user %s", user.id)
            raise AuthError("Refresh token is expired or used")

        pair = await self._issue_pair(user)
        swapped = await self._store.rotate_refresh_token(
            user.id, presented_refresh_token, pair.refresh_token
        )
        if not swapped:
            logger.warning("refresh: concurrent rotation won for user %s", user.id)
            raise AuthError("Refresh token is expired or used")

        logger.info("Refreshed session for user %s", user.id)
        return pair

    async def _issue_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self._issuer.issue_access_token(_access_claims(user)),
            refresh_token=self._issuer.issue_refresh_token(user.id),
        )

    # ── Password ────────────────────────────────────────────────────────

    async def change_password(
        self,
        user_id: str,
        old_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        if not new_password or not new_password.strip():
            raise ValidationError("New password is required")

        user = await self._store.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User does not exist")

        if not await verify_password_async(old_password or "", user.password_hash):
            logger.warning("change_password: bad old password for user %s", user.id)
            raise AuthError("Invalid old password")

        password_hash = await hash_password_async(new_password, self._password_rounds)
        if await self._store.update_by_id(user.id, password_hash=password_hash) is None:
            raise NotFoundError("User does not exist")
        logger.info("Password changed for user %s", user.id)
