"""
Credential store — persistence of ``User`` rows.

Every call opens its own session from the ``Database`` handle, and the
whole session, commit included, is bounded by ``timeout`` seconds.
Timeouts and driver failures surface as ``StorageError``; unique-constraint
violations surface as ``ConflictError`` naming the colliding field (email
wins when both do).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, StorageError
from database.models import User
from database.session import Database

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Columns callers may change through ``update_by_id``.
_UPDATABLE = frozenset(
    {"username", "email", "full_name", "avatar", "cover_image", "password_hash", "refresh_token"}
)


def _to_uuid(value: str | uuid.UUID) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class UserStore:
    """Lookups and writes for user records."""

    def __init__(self, db: Database, timeout: float = 10.0) -> None:
        self._db = db
        self._timeout = timeout

    async def _run(self, operation: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def _in_session() -> T:
            async with self._db.session() as session:
                return await fn(session)

        # The deadline covers checkout and commit, not just the statements.
        try:
            return await asyncio.wait_for(_in_session(), timeout=self._timeout)
        except IntegrityError:
            raise
        except asyncio.TimeoutError as exc:
            logger.error("Store %s timed out after %.1fs", operation, self._timeout)
            raise StorageError(f"Storage timed out during {operation}") from exc
        except SQLAlchemyError as exc:
            logger.error("Store %s failed: %s", operation, exc)
            raise StorageError(f"Storage failure during {operation}") from exc

    # ── Lookups ─────────────────────────────────────────────────────────

    async def find_by_id(self, user_id: str | uuid.UUID) -> Optional[User]:
        uid = _to_uuid(user_id)
        if uid is None:
            return None

        async def _op(session: AsyncSession) -> Optional[User]:
            return await session.get(User, uid)

        return await self._run("find_by_id", _op)

    async def find_by_username(self, username: str) -> Optional[User]:
        return await self._find_one("find_by_username", User.username == username)

    async def find_by_email(self, email: str) -> Optional[User]:
        return await self._find_one("find_by_email", User.email == email)

    async def find_by_username_or_email(
        self,
        username: Optional[str],
        email: Optional[str],
    ) -> Optional[User]:
        """First user matching either identifier (``None`` ones are skipped)."""
        clauses = []
        if username:
            clauses.append(User.username == username)
        if email:
            clauses.append(User.email == email)
        if not clauses:
            return None
        return await self._find_one("find_by_username_or_email", or_(*clauses))

    async def _find_one(self, operation: str, clause: Any) -> Optional[User]:
        async def _op(session: AsyncSession) -> Optional[User]:
            result = await session.execute(
                select(User).where(clause).order_by(User.created_at.asc()).limit(1)
            )
            return result.scalar_one_or_none()

        return await self._run(operation, _op)

    # ── Writes ──────────────────────────────────────────────────────────

    async def create(self, **fields: Any) -> User:
        """Insert a new user; the unique constraints decide collisions."""

        async def _op(session: AsyncSession) -> User:
            user = User(id=uuid.uuid4(), **fields)
            session.add(user)
            await session.flush()
            return user

        try:
            user = await self._run("create", _op)
        except IntegrityError as exc:
            raise await self._conflict_for(fields, exclude_id=None) from exc
        logger.info("Created user %s (%s)", user.username, user.id)
        return user

    async def update_by_id(self, user_id: str | uuid.UUID, **fields: Any) -> Optional[User]:
        """
        Apply a partial update and return the fresh row.

        Returns ``None`` when the user no longer exists.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        uid = _to_uuid(user_id)
        if uid is None:
            return None

        async def _op(session: AsyncSession) -> Optional[User]:
            user = await session.get(User, uid)
            if user is None:
                return None
            for name, value in fields.items():
                setattr(user, name, value)
            user.updated_at = datetime.now(timezone.utc)
            await session.flush()
            return user

        try:
            return await self._run("update_by_id", _op)
        except IntegrityError as exc:
            raise await self._conflict_for(fields, exclude_id=uid) from exc

    async def set_refresh_token(self, user_id: str | uuid.UUID, token: Optional[str]) -> bool:
        """Overwrite (or clear) the stored refresh token.  True if the user exists."""
        uid = _to_uuid(user_id)
        if uid is None:
            return False

        async def _op(session: AsyncSession) -> bool:
            result = await session.execute(
                update(User)
                .where(User.id == uid)
                .values(refresh_token=token, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

        return await self._run("set_refresh_token", _op)

    async def rotate_refresh_token(
        self,
        user_id: str | uuid.UUID,
        presented: str,
        replacement: str,
    ) -> bool:
        """
        Compare-and-swap the refresh token.

        The row is only updated while it still holds ``presented``, so of
        two concurrent rotations with the same token exactly one wins.
        """
        uid = _to_uuid(user_id)
        if uid is None:
            return False

        async def _op(session: AsyncSession) -> bool:
            result = await session.execute(
                update(User)
                .where(User.id == uid, User.refresh_token == presented)
                .values(refresh_token=replacement, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

        return await self._run("rotate_refresh_token", _op)

    # ── Helpers ─────────────────────────────────────────────────────────

    async def _conflict_for(
        self,
        fields: dict,
        exclude_id: Optional[uuid.UUID],
    ) -> ConflictError:
        """Work out which unique field an IntegrityError was about."""
        email = fields.get("email")
        if email is not None:
            existing = await self.find_by_email(email)
            if existing is not None and existing.id != exclude_id:
                return ConflictError("Email")
        username = fields.get("username")
        if username is not None:
            existing = await self.find_by_username(username)
            if existing is not None and existing.id != exclude_id:
                return ConflictError("Username")
        # Constraint tripped but the colliding row is gone again; report the
        # field most likely involved.
        return ConflictError("Email" if email is not None else "Username")
