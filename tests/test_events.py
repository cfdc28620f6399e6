"""
Tests for the stage -> commit | cancel engine and its three event kinds.
"""
import logging

import pytest
import pytest_asyncio
from sqlalchemy import Delete, select, text

from cauth.core import config
from cauth.core.errors import GroupNotFound, InvalidInput, NameConflict, NotFound, Unauthorized, UserNotFound
from cauth.core.security import verify_password_hash
from cauth.features.events.models import UserRegisterEvent
from cauth.features.events.schemas import DeleteUserPayload, EventKind, LoginUserPayload, RegisterUserPayload
from cauth.features.events.store import (
    cancel_event,
    commit_event,
    get_event,
    list_events,
    stage,
    stage_delete,
    stage_login,
    stage_register,
)
from cauth.features.groups.store import create_group
from cauth.features.permissions.store import create_permission
from cauth.features.sessions.store import get_session_user
from cauth.features.users.store import create_user, delete_user, get_user, grant_group, user_exists


@pytest_asyncio.fixture
async def alice(db):
    return await create_user(db, "alice", "wonderland")


# ============================================================================
# Staging
# ============================================================================

async def test_stage_returns_fresh_key(db, alice):
    first = await stage_delete(db, "alice")
    second = await stage_delete(db, "alice")

    assert first.id != second.id
    assert first.key != second.key
    assert len(first.key) == 2 * config.TOKEN_BYTES
    assert first.key not in repr(first)


async def test_stage_register_hashes_at_staging(db):
    credentials = await stage_register(db, "carol", "s3cret", {"team": "ops"})

    result = await db.execute(select(UserRegisterEvent).where(UserRegisterEvent.id == credentials.id))
    row = result.scalar_one()
    assert row.password_hash != "s3cret"
    assert verify_password_hash(row.password_hash, "s3cret")
    assert not await user_exists(db, "carol")


async def test_stage_register_preconditions(db, alice):
    with pytest.raises(NameConflict):
        await stage_register(db, "alice", "other")
    with pytest.raises(InvalidInput):
        await stage_register(db, "", "pw")
    with pytest.raises(InvalidInput):
        await stage_register(db, "dave", "")


async def test_stage_login_verifies_password_now(db, alice):
    with pytest.raises(Unauthorized):
        await stage_login(db, "alice", "wrong")
    with pytest.raises(UserNotFound):
        await stage_login(db, "nobody", "wonderland")

    assert await list_events(db, EventKind.LOGIN) == []


async def test_stage_delete_requires_user(db):
    with pytest.raises(UserNotFound):
        await stage_delete(db, "nobody")


async def test_stage_generic_payload(db, alice):
    credentials = await stage(db, LoginUserPayload(user_login="alice"))
    event = await get_event(db, "login", credentials.id)

    assert event.payload == LoginUserPayload(user_login="alice")


# ============================================================================
# Commit
# ============================================================================

async def test_commit_register(db):
    credentials = await stage_register(db, "carol", "s3cret", {"team": "ops"})

    assert await commit_event(db, EventKind.REGISTER, credentials.id, credentials.key) is None

    carol = await get_user(db, "carol")
    assert carol.details == {"team": "ops"}
    assert verify_password_hash(carol.password_hash, "s3cret")
    with pytest.raises(NotFound):
        await get_event(db, EventKind.REGISTER, credentials.id)


async def test_commit_login_returns_session_token(db, alice):
    credentials = await stage_login(db, "alice", "wonderland")

    token = await commit_event(db, "login", credentials.id, credentials.key)

    assert token
    assert (await get_session_user(db, token)).login == "alice"


async def test_commit_delete_applies_once(db, alice):
    credentials = await stage_delete(db, "alice")

    await commit_event(db, EventKind.DELETE, credentials.id, credentials.key)
    assert not await user_exists(db, "alice")

    with pytest.raises(NotFound):
        await commit_event(db, EventKind.DELETE, credentials.id, credentials.key)


async def test_wrong_key_leaves_event_pending(db, alice):
    credentials = await stage_delete(db, "alice")

    with pytest.raises(Unauthorized):
        await commit_event(db, EventKind.DELETE, credentials.id, "wrong-key")
    with pytest.raises(Unauthorized):
        await cancel_event(db, EventKind.DELETE, credentials.id, credentials.key[:-1])

    assert (await get_event(db, EventKind.DELETE, credentials.id)).payload.user_login == "alice"
    assert await user_exists(db, "alice")

    await commit_event(db, EventKind.DELETE, credentials.id, credentials.key)
    assert not await user_exists(db, "alice")


async def test_key_is_bound_to_its_kind(db, alice):
    credentials = await stage_delete(db, "alice")

    with pytest.raises(NotFound):
        await commit_event(db, EventKind.LOGIN, credentials.id, credentials.key)

    assert await user_exists(db, "alice")


async def test_commit_unknown_event(db):
    with pytest.raises(NotFound):
        await commit_event(db, EventKind.REGISTER, 42, "key")


async def test_unknown_kind(db):
    with pytest.raises(InvalidInput):
        await commit_event(db, "rename", 1, "key")


async def test_failed_side_effect_still_removes_event(db):
    first = await stage_register(db, "carol", "one")
    second = await stage_register(db, "carol", "two")

    await commit_event(db, EventKind.REGISTER, first.id, first.key)

    with pytest.raises(NameConflict) as excinfo:
        await commit_event(db, EventKind.REGISTER, second.id, second.key)
    assert excinfo.value.terminal

    with pytest.raises(NotFound):
        await get_event(db, EventKind.REGISTER, second.id)
    with pytest.raises(NotFound):
        await commit_event(db, EventKind.REGISTER, second.id, second.key)
    assert verify_password_hash((await get_user(db, "carol")).password_hash, "one")


async def test_delete_of_vanished_user_is_terminal(db, alice):
    staged_delete = await stage_delete(db, "alice")
    staged_login = await stage_login(db, "alice", "wonderland")
    first = await stage_delete(db, "alice")

    await commit_event(db, EventKind.DELETE, first.id, first.key)

    with pytest.raises(NotFound):
        await commit_event(db, EventKind.DELETE, staged_delete.id, staged_delete.key)
    with pytest.raises(UserNotFound):
        await commit_event(db, EventKind.LOGIN, staged_login.id, staged_login.key)

    assert await list_events(db, EventKind.DELETE) == []
    assert await list_events(db, EventKind.LOGIN) == []


async def test_terminal_failure_survives_session_scope(session_scope):
    async with session_scope() as db:
        await create_user(db, "alice", "wonderland")
        staged = await stage_delete(db, "alice")

    async with session_scope() as db:
        await delete_user(db, "alice")

    with pytest.raises(NotFound):
        async with session_scope() as db:
            await commit_event(db, EventKind.DELETE, staged.id, staged.key)

    async with session_scope() as db:
        assert await list_events(db, EventKind.DELETE) == []


async def test_other_errors_roll_back_the_scope(session_scope):
    with pytest.raises(RuntimeError):
        async with session_scope() as db:
            await create_user(db, "alice", "wonderland")
            raise RuntimeError("connection lost")

    async with session_scope() as db:
        assert not await user_exists(db, "alice")


async def test_domain_errors_roll_back_the_scope(session_scope):
    with pytest.raises(GroupNotFound) as excinfo:
        async with session_scope() as db:
            await create_user(db, "alice", "wonderland")
            await grant_group(db, "alice", "missing-group")

    assert not excinfo.value.terminal
    async with session_scope() as db:
        assert not await user_exists(db, "alice")


async def test_failed_claim_rolls_back_the_scope(session_scope):
    with pytest.raises(NotFound):
        async with session_scope() as db:
            await create_user(db, "alice", "wonderland")
            await commit_event(db, EventKind.DELETE, 42, "key")

    async with session_scope() as db:
        assert not await user_exists(db, "alice")


class RacingSession:
    """Deletes a pending event right before the first DELETE statement runs."""

    def __init__(self, db, table, event_id):
        self.db = db
        self.table = table
        self.event_id = event_id
        self.raced = False

    async def execute(self, statement, *args, **kwargs):
        if isinstance(statement, Delete) and not self.raced:
            self.raced = True
            await self.db.execute(text(f"DELETE FROM {self.table} WHERE id = :id"), {"id": self.event_id})
        return await self.db.execute(statement, *args, **kwargs)

    def __getattr__(self, name):
        return getattr(self.db, name)


async def test_claim_lost_to_a_concurrent_claimer(db, alice):
    credentials = await stage_delete(db, "alice")
    racing = RacingSession(db, "user_delete_events", credentials.id)

    with pytest.raises(NotFound):
        await commit_event(racing, EventKind.DELETE, credentials.id, credentials.key)

    assert racing.raced
    assert await user_exists(db, "alice")
    with pytest.raises(NotFound):
        await cancel_event(db, EventKind.DELETE, credentials.id, credentials.key)


async def test_reregistered_login_starts_without_groups(db, alice):
    await create_permission(db, "docs:read")
    await create_group(db, "readers", "", ["docs:read"])
    await grant_group(db, "alice", "readers")
    credentials = await stage_delete(db, "alice")

    await commit_event(db, EventKind.DELETE, credentials.id, credentials.key)

    # Re-registering the login does not resurrect memberships
    registered = await stage_register(db, "alice", "again")
    await commit_event(db, EventKind.REGISTER, registered.id, registered.key)
    assert (await get_user(db, "alice")).groups == []


# ============================================================================
# Cancel
# ============================================================================

async def test_cancel_discards_without_effect(db, alice):
    credentials = await stage_delete(db, "alice")

    await cancel_event(db, EventKind.DELETE, credentials.id, credentials.key)

    assert await user_exists(db, "alice")
    with pytest.raises(NotFound):
        await commit_event(db, EventKind.DELETE, credentials.id, credentials.key)
    with pytest.raises(NotFound):
        await cancel_event(db, EventKind.DELETE, credentials.id, credentials.key)


async def test_cancel_register_creates_nothing(db):
    credentials = await stage_register(db, "carol", "s3cret")
    await cancel_event(db, "register", credentials.id, credentials.key)

    assert not await user_exists(db, "carol")


# ============================================================================
# Inspection
# ============================================================================

async def test_listing_never_exposes_keys_or_hashes(db, alice):
    registered = await stage_register(db, "carol", "s3cret")
    deleted = await stage_delete(db, "alice")

    [register_event] = await list_events(db, EventKind.REGISTER)
    [delete_event] = await list_events(db, EventKind.DELETE)

    assert register_event.id == registered.id
    assert isinstance(register_event.payload, RegisterUserPayload)
    assert register_event.payload.login == "carol"
    assert delete_event.payload == DeleteUserPayload(user_login="alice")

    dumped = register_event.model_dump_json() + delete_event.model_dump_json()
    assert registered.key not in dumped
    assert deleted.key not in dumped
    assert "password_hash" not in dumped
    assert "key" not in register_event.model_dump()


async def test_list_order_and_pagination(db, alice):
    ids = [(await stage_delete(db, "alice")).id for _ in range(3)]

    assert [e.id for e in await list_events(db, EventKind.DELETE)] == ids
    assert [e.id for e in await list_events(db, EventKind.DELETE, "desc")] == ids[::-1]
    assert [e.id for e in await list_events(db, EventKind.DELETE, offset=1, limit=1)] == ids[1:2]


async def test_get_missing_event(db):
    with pytest.raises(NotFound):
        await get_event(db, EventKind.LOGIN, 1)


async def test_rejected_key_is_logged_at_debug(db, alice, caplog):
    credentials = await stage_delete(db, "alice")

    with caplog.at_level(logging.DEBUG, logger="cauth"):
        with pytest.raises(Unauthorized):
            await commit_event(db, EventKind.DELETE, credentials.id, "wrong-key")

    rejected = [r for r in caplog.records if r.getMessage().startswith("Rejected key")]
    assert rejected
    assert all(r.levelno == logging.DEBUG for r in rejected)
    assert credentials.key not in caplog.text
