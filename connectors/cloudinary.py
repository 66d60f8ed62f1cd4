"""
CloudinaryUploader — signed uploads to the Cloudinary REST API.

Calls are natively async via httpx and bounded by ``timeout``.  The local
temp file is removed after every attempt, successful or not.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from connectors.base import BaseUploader, UploadResult
from core.errors import DependencyError

logger = logging.getLogger(__name__)

_CLOUDINARY_API = "https://api.cloudinary.com/v1_1"


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature: sha1 of sorted ``k=v`` pairs + secret."""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode()).hexdigest()


class CloudinaryUploader(BaseUploader):
    """Uploader backed by a Cloudinary cloud."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> "CloudinaryUploader":
        return cls(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
            timeout=settings.upload_timeout_seconds,
        )

    @property
    def provider_name(self) -> str:
        return "cloudinary"

    def is_configured(self) -> bool:
        return bool(self._cloud_name and self._api_key and self._api_secret)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {**params, "timestamp": int(time.time())}
        params["signature"] = sign_params(params, self._api_secret)
        params["api_key"] = self._api_key
        return params

    async def upload(self, local_path: str) -> UploadResult:
        path = Path(local_path)
        try:
            if not self.is_configured():
                raise DependencyError("Media store is not configured")
            try:
                content = await asyncio.to_thread(path.read_bytes)
            except OSError as exc:
                raise DependencyError(f"Cannot read upload file {path.name}") from exc

            url = f"{_CLOUDINARY_API}/{self._cloud_name}/auto/upload"
            try:
                async with self._client() as client:
                    resp = await client.post(
                        url,
                        data=self._signed({}),
                        files={"file": (path.name, content)},
                    )
                    resp.raise_for_status()
                    body = resp.json()
            except httpx.TimeoutException as exc:
                logger.error("Cloudinary upload of %s timed out", path.name)
                raise DependencyError("Media upload timed out") from exc
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Cloudinary upload of %s rejected: HTTP %s",
                    path.name, exc.response.status_code,
                )
                raise DependencyError("Media upload was rejected") from exc
            except (httpx.HTTPError, ValueError) as exc:
                logger.error("Cloudinary upload of %s failed: %s", path.name, exc)
                raise DependencyError("Media upload failed") from exc

            if not isinstance(body, dict):
                body = {}
            media_url = body.get("secure_url") or body.get("url")
            if not media_url or not isinstance(media_url, str):
                raise DependencyError("Media store returned no URL")
            logger.info("Uploaded %s → %s", path.name, media_url)
            return UploadResult(url=media_url, public_id=body.get("public_id"))
        finally:
            await asyncio.to_thread(path.unlink, missing_ok=True)

    async def delete(self, public_id: str) -> bool:
        if not self.is_configured():
            return False
        url = f"{_CLOUDINARY_API}/{self._cloud_name}/image/destroy"
        try:
            async with self._client() as client:
                resp = await client.post(url, data=self._signed({"public_id": public_id}))
                resp.raise_for_status()
                body = resp.json()
                return isinstance(body, dict) and body.get("result") == "ok"
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Cloudinary delete of %s failed: %s", public_id, exc)
            return False
