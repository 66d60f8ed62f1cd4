"""
Tests for the credential store against in-memory SQLite.
"""

import asyncio
import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, StorageError
from database.session import Database
from database.user_store import UserStore


def _fields(**overrides) -> dict:
    fields = dict(
        username="alice",
        email="alice@x.com",
        full_name="alice liddell",
        avatar="https://media.test/a.png",
        password_hash="$2b$04$hash",
    )
    fields.update(overrides)
    return fields


class TestLookups:
    @pytest.mark.asyncio
    async def test_create_then_find(self, store):
        user = await store.create(**_fields())
        assert isinstance(user.id, uuid.UUID)
        assert user.refresh_token is None
        assert user.cover_image is None

        assert (await store.find_by_id(user.id)).username == "alice"
        assert (await store.find_by_id(str(user.id))).email == "alice@x.com"
        assert (await store.find_by_username("alice")).id == user.id
        assert (await store.find_by_email("alice@x.com")).id == user.id

    @pytest.mark.asyncio
    async def test_missing_user(self, store):
        assert await store.find_by_id(uuid.uuid4()) is None
        assert await store.find_by_username("nobody") is None
        assert await store.find_by_email("nobody@x.com") is None

    @pytest.mark.asyncio
    async def test_find_by_id_with_garbage(self, store):
        assert await store.find_by_id("not-a-uuid") is None

    @pytest.mark.asyncio
    async def test_username_or_email(self, store):
        user = await store.create(**_fields())
        assert (await store.find_by_username_or_email("alice", None)).id == user.id
        assert (await store.find_by_username_or_email(None, "alice@x.com")).id == user.id
        assert (await store.find_by_username_or_email("nobody", "alice@x.com")).id == user.id
        assert await store.find_by_username_or_email(None, None) is None


class TestUniqueness:
    @pytest.mark.asyncio
    async def test_duplicate_username(self, store):
        await store.create(**_fields())
        with pytest.raises(ConflictError) as err:
            await store.create(**_fields(email="other@x.com"))
        assert err.value.field == "Username"
        assert err.value.status_code == 409

    @pytest.mark.asyncio
    async def test_duplicate_email(self, store):
        await store.create(**_fields())
        with pytest.raises(ConflictError) as err:
            await store.create(**_fields(username="other"))
        assert err.value.field == "Email"

    @pytest.mark.asyncio
    async def test_both_collide_reports_email(self, store):
        await store.create(**_fields())
        with pytest.raises(ConflictError) as err:
            await store.create(**_fields())
        assert err.value.message == "Email already exists."

    @pytest.mark.asyncio
    async def test_update_into_taken_email(self, store):
        await store.create(**_fields())
        bob = await store.create(**_fields(username="bob", email="bob@x.com"))
        with pytest.raises(ConflictError):
            await store.update_by_id(bob.id, email="alice@x.com")
        assert (await store.find_by_id(bob.id)).email == "bob@x.com"


class TestUpdates:
    @pytest.mark.asyncio
    async def test_partial_update(self, store):
        user = await store.create(**_fields())
        updated = await store.update_by_id(user.id, full_name="alice l.")
        assert updated.full_name == "alice l."
        assert updated.email == "alice@x.com"

    @pytest.mark.asyncio
    async def test_update_missing_user(self, store):
        assert await store.update_by_id(uuid.uuid4(), full_name="x") is None

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_column(self, store):
        user = await store.create(**_fields())
        with pytest.raises(ValueError):
            await store.update_by_id(user.id, id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_set_and_clear_refresh_token(self, store):
        user = await store.create(**_fields())
        assert await store.set_refresh_token(user.id, "token-1")
        assert (await store.find_by_id(user.id)).refresh_token == "token-1"
        assert await store.set_refresh_token(user.id, None)
        assert (await store.find_by_id(user.id)).refresh_token is None

    @pytest.mark.asyncio
    async def test_set_refresh_token_unknown_user(self, store):
        assert not await store.set_refresh_token(uuid.uuid4(), "token")


class TestRotation:
    @pytest.mark.asyncio
    async def test_swap_when_current(self, store):
        user = await store.create(**_fields())
        await store.set_refresh_token(user.id, "old")
        assert await store.rotate_refresh_token(user.id, "old", "new")
        assert (await store.find_by_id(user.id)).refresh_token == "new"

    @pytest.mark.asyncio
    async def test_no_swap_when_stale(self, store):
        user = await store.create(**_fields())
        await store.set_refresh_token(user.id, "old")
        assert await store.rotate_refresh_token(user.id, "old", "new")
        assert not await store.rotate_refresh_token(user.id, "old", "newer")
        assert (await store.find_by_id(user.id)).refresh_token == "new"

    @pytest.mark.asyncio
    async def test_no_swap_after_clear(self, store):
        user = await store.create(**_fields())
        await store.set_refresh_token(user.id, "old")
        await store.set_refresh_token(user.id, None)
        assert not await store.rotate_refresh_token(user.id, "old", "new")


class TestFailures:
    @pytest.mark.asyncio
    async def test_timeout_becomes_storage_error(self, database):
        store = UserStore(database, timeout=0.05)

        async def slow(session):
            await asyncio.sleep(1)

        with pytest.raises(StorageError, match="timed out"):
            await store._run("slow", slow)

    @pytest.mark.asyncio
    async def test_stalled_commit_times_out(self, database):
        store = UserStore(database, timeout=0.05)

        async def stalled_commit(self):
            await asyncio.sleep(1)

        with patch.object(AsyncSession, "commit", stalled_commit):
            with pytest.raises(StorageError, match="timed out"):
                await store.create(**_fields())

        # Rolled back with the cancelled session.
        assert await store.find_by_username("alice") is None

    @pytest.mark.asyncio
    async def test_driver_error_becomes_storage_error(self, store):
        async def broken(session):
            raise OperationalError("SELECT 1", {}, Exception("connection lost"))

        with pytest.raises(StorageError) as err:
            await store._run("broken", broken)
        assert err.value.status_code == 500

    @pytest.mark.asyncio
    async def test_unconnected_database(self):
        store = UserStore(Database("sqlite+aiosqlite://"))
        with pytest.raises(RuntimeError):
            await store.find_by_username("alice")
