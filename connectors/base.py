"""
BaseUploader — abstract interface for media stores.

Account images (avatar, cover image) are handed to an uploader as a local
temp file and come back as a public URL.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class UploadResult:
    url: str
    public_id: Optional[str] = None


class BaseUploader(ABC):
    """Abstract base for all media uploaders."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug: 'cloudinary', ..."""
        ...

    @abstractmethod
    async def upload(self, local_path: str) -> UploadResult:
        """
        Push a local file to the media store.

        Parameters
        ----------
        local_path : str
            Path of the temp file written by the HTTP layer.  The uploader
            owns it from here on and removes it once the attempt is over.

        Raises
        ------
        DependencyError
            When the store cannot be reached, times out or rejects the file.
        """
        ...

    async def delete(self, public_id: str) -> bool:
        """
        Remove a previously uploaded file (optional, best effort).
        Returns True on success, False if the store doesn't support it.
        """
        return False

    def is_configured(self) -> bool:
        """Return True if this uploader has all required credentials."""
        return True
