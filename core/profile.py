"""
ProfileService — read and update the non-credential fields of an account.

Callers pass a user id that the HTTP layer has already authenticated.
"""

from __future__ import annotations

import logging
from typing import Optional

from connectors.base import BaseUploader
from core.errors import NotFoundError, ValidationError
from database.user_store import UserStore
from utils.schemas import UserOut

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, store: UserStore, uploader: BaseUploader) -> None:
        self._store = store
        self._uploader = uploader

    async def get_current_user(self, user_id: str) -> UserOut:
        user = await self._store.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User does not exist")
        return UserOut.from_user(user)

    async def update_account_details(
        self,
        user_id: str,
        full_name: Optional[str],
        email: Optional[str],
    ) -> UserOut:
        full_name = (full_name or "").strip().lower()
        email = (email or "").strip().lower()
        if not full_name or not email:
            raise ValidationError("All fields are required")

        user = await self._store.update_by_id(user_id, full_name=full_name, email=email)
        if user is None:
            raise NotFoundError("User does not exist")
        logger.info("Updated account details for user %s", user_id)
        return UserOut.from_user(user)

    async def update_avatar(self, user_id: str, avatar_path: Optional[str]) -> UserOut:
        if not avatar_path:
            raise ValidationError("Avatar file is missing")
        return await self._replace_image(user_id, "avatar", avatar_path)

    async def update_cover_image(self, user_id: str, cover_image_path: Optional[str]) -> UserOut:
        if not cover_image_path:
            raise ValidationError("Cover image file is missing")
        return await self._replace_image(user_id, "cover_image", cover_image_path)

    async def _replace_image(self, user_id: str, field: str, local_path: str) -> UserOut:
        uploaded = await self._uploader.upload(local_path)
        user = await self._store.update_by_id(user_id, **{field: uploaded.url})
        if user is None:
            logger.warning("%s upload for vanished user %s", field, user_id)
            if uploaded.public_id:
                await self._uploader.delete(uploaded.public_id)
            raise NotFoundError("User does not exist")
        logger.info("Updated %s for user %s", field, user_id)
        return UserOut.from_user(user)
