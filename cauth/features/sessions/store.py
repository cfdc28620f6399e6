"""
Login session store.

Tokens are random hex strings from the ``secrets`` CSPRNG and identify exactly
one session.
"""
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cauth.core.errors import NotFound, UserNotFound
from cauth.core.security import generate_secret
from cauth.features.authorization.dependencies import token_has_permission
from cauth.features.sessions.models import LoginSession
from cauth.features.sessions.schemas import LoginSessionResponse
from cauth.features.users.schemas import UserResponse
from cauth.utils import get_logger, log_database_interaction


log = get_logger(__name__)


async def get_session(db: AsyncSession, token: str) -> LoginSessionResponse:
    """
    Get the session identified by a token.

    Raises:
        NotFound: unknown or deleted token
    """
    result = await db.execute(select(LoginSession).where(LoginSession.token == token))
    session = result.scalar_one_or_none()

    if session is None:
        raise NotFound("Login session not found")

    return LoginSessionResponse.model_validate(session)


async def create_session(db: AsyncSession, user_login: str) -> str:
    """
    Issue a new session for a user and return its token.

    The owner is checked by the foreign key on ``login_sessions.user_login``.

    Raises:
        UserNotFound: if the user does not exist
    """
    token = generate_secret()

    try:
        async with db.begin_nested():
            db.add(LoginSession(user_login=user_login, token=token))
            await db.flush()
    except IntegrityError:
        log_database_interaction("Inserting login session", {"user_login": user_login}, error="User not found")
        raise UserNotFound("Mentioned user not found")

    log.info("Issued login session for %s", user_login)
    log_database_interaction("Inserting login session", {"user_login": user_login})
    return token


async def delete_session(db: AsyncSession, session_id: int) -> None:
    """
    Delete a session by id (log out).

    Raises:
        NotFound: if the session never existed
    """
    result = await db.execute(delete(LoginSession).where(LoginSession.id == session_id))

    if result.rowcount == 0:
        log_database_interaction("Deleting login session", {"id": session_id}, error="Not found")
        raise NotFound("Login session not found")

    log_database_interaction("Deleting login session", {"id": session_id})


async def delete_session_by_token(db: AsyncSession, token: str) -> None:
    """
    Delete the session identified by a token, invalidating it immediately.

    Raises:
        NotFound: unknown or already deleted token
    """
    session = await get_session(db, token)
    await delete_session(db, session.id)
    log.info("Closed login session %d of %s", session.id, session.user_login)


async def delete_user_sessions(db: AsyncSession, user_login: str) -> int:
    """Delete every session of a user, returning how many were removed."""
    result = await db.execute(delete(LoginSession).where(LoginSession.user_login == user_login))
    return result.rowcount


async def get_session_user(db: AsyncSession, token: str) -> UserResponse:
    """
    Resolve a token to the user owning it.

    Raises:
        NotFound: unknown or deleted token
    """
    from cauth.features.users.store import get_user

    session = await get_session(db, token)
    return await get_user(db, session.user_login)


async def session_has_permission(db: AsyncSession, token: str, permission_name: str) -> bool:
    """Check a permission through the token's owner. Unknown tokens have no permissions."""
    return await token_has_permission(db, token, permission_name)
