"""
Event staging engine: stage -> commit | cancel.

Staging validates the variant's preconditions, persists the payload with a
fresh capability key and hands ``{id, key}`` to the creator. Presenting the
exact key later either applies the payload (commit) or discards it (cancel).
Both are terminal: the pending row is claimed by a conditional delete before
anything else happens, so a second attempt always sees ``NotFound`` and a
failing side effect does not leave the row behind.
"""
from typing import Any, Dict, List, Optional, Union
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cauth.core.database.listing import Order, paginate
from cauth.core.errors import CauthError, InvalidInput, NameConflict, NotFound, Unauthorized, UserNotFound
from cauth.core.security import generate_secret, hash_password, secrets_match
from cauth.core.validation import validate_input
from cauth.features.events.models import UserDeleteEvent, UserLoginEvent, UserRegisterEvent
from cauth.features.events.schemas import (
    DeleteUserPayload,
    EventCredentials,
    EventKind,
    LoginUserPayload,
    RegisterUserPayload,
    StagedEventPayload,
    StagedEventResponse,
)
from cauth.features.sessions.store import create_session
from cauth.features.users.schemas import UserCreate
from cauth.features.users.store import create_user_unhashed, delete_user, user_exists, verify_password
from cauth.utils import get_logger, log_database_interaction


log = get_logger(__name__)

EventModel = Union[UserRegisterEvent, UserLoginEvent, UserDeleteEvent]

_EVENT_MODELS = {
    EventKind.REGISTER: UserRegisterEvent,
    EventKind.LOGIN: UserLoginEvent,
    EventKind.DELETE: UserDeleteEvent,
}


# ============================================================================
# Payload <-> row mapping
# ============================================================================

def _model_for(kind: Union[EventKind, str]) -> type:
    try:
        return _EVENT_MODELS[EventKind(kind)]
    except ValueError:
        raise InvalidInput(f"Unknown event kind: {kind}")


def _row_from_payload(payload: StagedEventPayload, key: str) -> EventModel:
    if isinstance(payload, RegisterUserPayload):
        return UserRegisterEvent(
            key=key,
            login=payload.login,
            password_hash=payload.password_hash,
            details=payload.details,
        )
    if isinstance(payload, LoginUserPayload):
        return UserLoginEvent(key=key, user_login=payload.user_login)
    if isinstance(payload, DeleteUserPayload):
        return UserDeleteEvent(key=key, user_login=payload.user_login)
    raise InvalidInput(f"Unsupported event payload: {type(payload).__name__}")


def _payload_from_row(row: EventModel) -> StagedEventPayload:
    if isinstance(row, UserRegisterEvent):
        return RegisterUserPayload(login=row.login, password_hash=row.password_hash, details=row.details or {})
    if isinstance(row, UserLoginEvent):
        return LoginUserPayload(user_login=row.user_login)
    return DeleteUserPayload(user_login=row.user_login)


def _describe(payload: StagedEventPayload) -> Dict[str, Any]:
    """Loggable view of a payload (no secrets)."""
    return payload.model_dump()


# ============================================================================
# Staging
# ============================================================================

async def stage(db: AsyncSession, payload: StagedEventPayload) -> EventCredentials:
    """
    Persist a validated payload as a pending event with a fresh key.

    The returned key is never disclosed again.
    """
    key = generate_secret()
    row = _row_from_payload(payload, key)
    db.add(row)
    await db.flush()

    log.info("Staged %s event %d", payload.kind, row.id)
    log_database_interaction("Staging event", {"id": row.id, **_describe(payload)})
    return EventCredentials(id=row.id, key=key)


async def stage_register(
    db: AsyncSession,
    login: str,
    password: str,
    details: Optional[Dict[str, Any]] = None,
) -> EventCredentials:
    """
    Stage a user registration. The password is hashed now so it never round-trips.

    Raises:
        InvalidInput: login out of bounds or empty password
        NameConflict: a user with this login already exists
        HashingFailure: the password cannot be hashed
    """
    data = validate_input(UserCreate, login=login, password=password, details=details or {})

    if await user_exists(db, data.login):
        raise NameConflict("A user with this login already exists")

    payload = RegisterUserPayload(login=data.login, password_hash=hash_password(data.password), details=data.details)
    return await stage(db, payload)


async def stage_login(db: AsyncSession, login: str, password: str) -> EventCredentials:
    """
    Stage a login. The password is verified now; the session is only issued on commit.

    Raises:
        UserNotFound: if no user has this login
        Unauthorized: if the password does not match
    """
    try:
        await verify_password(db, login, password)
    except NotFound:
        raise UserNotFound("User with this login does not exist")

    return await stage(db, LoginUserPayload(user_login=login))


async def stage_delete(db: AsyncSession, login: str) -> EventCredentials:
    """
    Stage the deletion of a user.

    Raises:
        UserNotFound: if no user has this login
    """
    if not await user_exists(db, login):
        raise UserNotFound("User with this login does not exist")

    return await stage(db, DeleteUserPayload(user_login=login))


# ============================================================================
# Commit / cancel
# ============================================================================

async def apply_event(db: AsyncSession, payload: StagedEventPayload) -> Optional[str]:
    """
    Apply a payload's side effect.

    Returns:
        The new session token for login events, None otherwise
    """
    if isinstance(payload, RegisterUserPayload):
        await create_user_unhashed(db, payload.login, payload.password_hash, payload.details)
        return None
    if isinstance(payload, LoginUserPayload):
        return await create_session(db, payload.user_login)
    if isinstance(payload, DeleteUserPayload):
        await delete_user(db, payload.user_login)
        return None
    raise InvalidInput(f"Unsupported event payload: {type(payload).__name__}")


async def _claim(db: AsyncSession, kind: Union[EventKind, str], event_id: int, key: str) -> StagedEventPayload:
    """
    Check the key and delete the pending row, returning its payload.

    Raises:
        NotFound: no such pending event (or another caller claimed it first)
        Unauthorized: wrong key; the row is left untouched
    """
    model = _model_for(kind)
    result = await db.execute(select(model).where(model.id == event_id))
    row = result.scalar_one_or_none()

    if row is None:
        raise NotFound("This event cannot be found")

    if not secrets_match(key, row.key):
        log.debug("Rejected key for %s event %d", EventKind(kind).value, event_id)
        raise Unauthorized("Invalid event key")

    payload = _payload_from_row(row)
    result = await db.execute(delete(model).where(model.id == event_id, model.key == row.key))

    if result.rowcount == 0:
        raise NotFound("This event cannot be found")

    return payload


async def commit_event(db: AsyncSession, kind: Union[EventKind, str], event_id: int, key: str) -> Optional[str]:
    """
    Apply a pending event and remove it.

    The removal stands even when the side effect fails: its error is re-raised
    marked ``terminal`` so that ``get_db`` commits the removal anyway.

    Returns:
        The new session token for login events, None otherwise

    Raises:
        NotFound: no such pending event
        Unauthorized: wrong key
        CauthError: whatever the side effect raised (e.g. NameConflict, UserNotFound, NotFound)
    """
    payload = await _claim(db, kind, event_id, key)

    try:
        async with db.begin_nested():
            outcome = await apply_event(db, payload)
    except CauthError as e:
        log.warning("Committing %s event %d failed, event discarded: %s", payload.kind, event_id, e.message)
        log_database_interaction("Committing event", {"id": event_id, **_describe(payload)}, error=e.message)
        e.terminal = True
        raise

    log.info("Committed %s event %d", payload.kind, event_id)
    log_database_interaction("Committing event", {"id": event_id, **_describe(payload)})
    return outcome


async def cancel_event(db: AsyncSession, kind: Union[EventKind, str], event_id: int, key: str) -> None:
    """
    Discard a pending event without applying it.

    Raises:
        NotFound: no such pending event
        Unauthorized: wrong key
    """
    payload = await _claim(db, kind, event_id, key)

    log.info("Cancelled %s event %d", payload.kind, event_id)
    log_database_interaction("Cancelling event", {"id": event_id, **_describe(payload)})


# ============================================================================
# Inspection
# ============================================================================

async def get_event(db: AsyncSession, kind: Union[EventKind, str], event_id: int) -> StagedEventResponse:
    """
    Get a pending event without its key.

    Raises:
        NotFound: no such pending event
    """
    model = _model_for(kind)
    result = await db.execute(select(model).where(model.id == event_id))
    row = result.scalar_one_or_none()

    if row is None:
        raise NotFound("This event cannot be found")

    return StagedEventResponse(id=row.id, created_at=row.created_at, payload=_payload_from_row(row))


async def list_events(
    db: AsyncSession,
    kind: Union[EventKind, str],
    order: Optional[Order] = None,
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[StagedEventResponse]:
    """List pending events of one kind ordered by id, without keys."""
    model = _model_for(kind)
    result = await db.execute(paginate(select(model), model.id, order, offset, limit))
    return [
        StagedEventResponse(id=row.id, created_at=row.created_at, payload=_payload_from_row(row))
        for row in result.scalars().all()
    ]
