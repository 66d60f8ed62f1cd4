"""
User API routes — register, login, logout, refresh, password and profile.

Route prefix: /api/v1/users
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse

from auth.cookies import REFRESH_COOKIE, clear_token_cookies, set_token_cookies
from auth.dependencies import (
    get_current_user_id,
    get_profile_service,
    get_session_manager,
    get_settings,
)
from config.settings import Settings
from core.profile import ProfileService
from core.session_manager import SessionManager
from utils.schemas import (
    ApiResponse,
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    UpdateAccountRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


def _envelope(status_code: int, data, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse.of(status_code, data, message).to_wire(),
    )


# ── Temp files for uploads ─────────────────────────────────────────────


def _write_temp(temp_dir: str, filename: str, content: bytes) -> str:
    directory = Path(temp_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{uuid.uuid4().hex}-{Path(filename).name}"
    path.write_bytes(content)
    return str(path)


async def _save_upload(upload: Optional[UploadFile], temp_dir: str) -> Optional[str]:
    """Spool an uploaded file to ``temp_dir``; ``None`` when nothing was sent."""
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    return await asyncio.to_thread(_write_temp, temp_dir, upload.filename, content)


async def _remove_temp(*paths: Optional[str]) -> None:
    # Uploaders delete their file; this catches the ones never handed over.
    for path in paths:
        if path:
            await asyncio.to_thread(Path(path).unlink, missing_ok=True)


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    full_name: str = Form("", alias="fullName"),
    email: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Register a new user (multipart form with avatar + optional cover image)."""
    avatar_path = await _save_upload(avatar, settings.upload_temp_dir)
    cover_path = await _save_upload(cover_image, settings.upload_temp_dir)
    try:
        user = await manager.register(
            full_name, email, username, password, avatar_path, cover_path,
        )
    finally:
        await _remove_temp(avatar_path, cover_path)
    return _envelope(status.HTTP_201_CREATED, user, "User registered successfully")


@router.post("/login")
async def login(
    req: LoginRequest,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Login with username or email + password."""
    result = await manager.login(req.password, username=req.username, email=req.email)
    response = _envelope(status.HTTP_200_OK, result, "User logged in successfully")
    set_token_cookies(response, result, settings)
    return response


@router.post("/logout")
async def logout(
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    await manager.logout(user_id)
    response = _envelope(status.HTTP_200_OK, {}, "User logged out")
    clear_token_cookies(response, settings)
    return response


@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    body: Optional[RefreshRequest] = None,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Rotate the refresh token (cookie first, then JSON body)."""
    presented = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    pair = await manager.refresh(presented)
    response = _envelope(status.HTTP_200_OK, pair, "Access token refreshed")
    set_token_cookies(response, pair, settings)
    return response


@router.post("/change-password")
async def change_password(
    req: ChangePasswordRequest,
    user_id: str = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    await manager.change_password(user_id, req.old_password, req.new_password)
    return _envelope(status.HTTP_200_OK, {}, "Password changed successfully")


@router.get("/current-user")
async def current_user(
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
) -> JSONResponse:
    user = await profiles.get_current_user(user_id)
    return _envelope(status.HTTP_200_OK, user, "Current user fetched successfully")


@router.patch("/update-account")
async def update_account(
    req: UpdateAccountRequest,
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
) -> JSONResponse:
    user = await profiles.update_account_details(user_id, req.full_name, req.email)
    return _envelope(status.HTTP_200_OK, user, "Account details updated successfully")


@router.patch("/avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    path = await _save_upload(avatar, settings.upload_temp_dir)
    try:
        user = await profiles.update_avatar(user_id, path)
    finally:
        await _remove_temp(path)
    return _envelope(status.HTTP_200_OK, user, "Avatar updated successfully")


@router.patch("/cover-image")
async def update_cover_image(
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileService = Depends(get_profile_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    path = await _save_upload(cover_image, settings.upload_temp_dir)
    try:
        user = await profiles.update_cover_image(user_id, path)
    finally:
        await _remove_temp(path)
    return _envelope(status.HTTP_200_OK, user, "Cover image updated successfully")
