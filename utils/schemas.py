"""
Pydantic schemas for the account API.

Wire names are camelCase (``fullName``, ``statusCode``); Python code uses
the snake_case field names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ═══════════════════════════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════════════════════════


class UserOut(_CamelModel):
    """
    A user as returned to callers.

    There is deliberately no field for the password hash or the refresh
    token, so they cannot leak through serialisation.
    """

    id: str
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: Any) -> "UserOut":
        return cls(
            id=str(user.id),
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            avatar=user.avatar,
            cover_image=user.cover_image or None,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class TokenPair(_CamelModel):
    access_token: str
    refresh_token: str


class LoginResult(TokenPair):
    user: UserOut


# ═══════════════════════════════════════════════════════════════════════════════
# Request bodies
# ═══════════════════════════════════════════════════════════════════════════════


class LoginRequest(_CamelModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str = ""


class RefreshRequest(_CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(_CamelModel):
    old_password: str = ""
    new_password: str = ""


class UpdateAccountRequest(_CamelModel):
    full_name: str = ""
    email: str = ""


# ═══════════════════════════════════════════════════════════════════════════════
# Envelope
# ═══════════════════════════════════════════════════════════════════════════════


class ApiResponse(_CamelModel):
    """Uniform success envelope: ``{statusCode, data, message, success}``."""

    status_code: int
    data: Any = None
    message: str = "Success"
    success: bool = True

    @classmethod
    def of(cls, status_code: int, data: Any, message: str = "Success") -> "ApiResponse":
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True, mode="json")
        return cls(status_code=status_code, data=data, message=message, success=status_code < 400)


class ApiErrorResponse(_CamelModel):
    status_code: int
    message: str
    success: bool = False
    errors: dict = {}
