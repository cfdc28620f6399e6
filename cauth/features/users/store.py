"""
User store: accounts, group memberships, password checks and login.
"""
from typing import Any, Dict, List, Optional
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cauth.core.database.listing import Order, paginate
from cauth.core.errors import GroupNotFound, NameConflict, NotFound, NotGranted, Unauthorized
from cauth.core.security import hash_password, verify_password_hash
from cauth.core.validation import validate_input
from cauth.features.authorization.dependencies import get_user_permissions, has_permission
from cauth.features.groups.store import group_exists
from cauth.features.sessions.store import create_session, delete_session_by_token, delete_user_sessions
from cauth.features.users.models import User, users_groups
from cauth.features.users.schemas import UserCreate, UserCreateHashed, UserResponse
from cauth.utils import get_logger, log_database_interaction


log = get_logger(__name__)


# ============================================================================
# Helpers
# ============================================================================

async def user_exists(db: AsyncSession, login: str) -> bool:
    result = await db.execute(select(User.login).where(User.login == login))
    return result.scalar_one_or_none() is not None


async def _groups_by_user(db: AsyncSession, logins: List[str]) -> Dict[str, List[str]]:
    """Map each login to its sorted group names."""
    memberships: Dict[str, List[str]] = {login: [] for login in logins}
    if not logins:
        return memberships

    result = await db.execute(
        select(users_groups.c.user_login, users_groups.c.group_name)
        .where(users_groups.c.user_login.in_(logins))
        .order_by(users_groups.c.group_name)
    )
    for user_login, group_name in result.all():
        memberships[user_login].append(group_name)
    return memberships


def _to_response(user: User, groups: List[str]) -> UserResponse:
    return UserResponse(
        login=user.login,
        password_hash=user.password_hash,
        details=user.details or {},
        groups=groups,
    )


async def _membership_exists(db: AsyncSession, login: str, group_name: str) -> bool:
    result = await db.execute(
        select(users_groups.c.user_login).where(
            users_groups.c.user_login == login,
            users_groups.c.group_name == group_name,
        )
    )
    return result.first() is not None


# ============================================================================
# User Operations
# ============================================================================

async def list_users(
    db: AsyncSession,
    order: Optional[Order] = None,
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[UserResponse]:
    """List users ordered by login, each with their group names."""
    stmt = paginate(select(User), User.login, order, offset, limit)
    result = await db.execute(stmt)
    users = result.scalars().all()

    memberships = await _groups_by_user(db, [user.login for user in users])
    return [_to_response(user, memberships[user.login]) for user in users]


async def get_user(db: AsyncSession, login: str) -> UserResponse:
    """
    Get a user by login.

    Raises:
        NotFound: if no user has this login
    """
    result = await db.execute(select(User).where(User.login == login))
    user = result.scalar_one_or_none()

    if user is None:
        raise NotFound("This user cannot be found")

    memberships = await _groups_by_user(db, [user.login])
    return _to_response(user, memberships[user.login])


async def create_user(
    db: AsyncSession,
    login: str,
    password: str,
    details: Optional[Dict[str, Any]] = None,
) -> UserResponse:
    """
    Register a user, hashing the password with a fresh salt.

    Raises:
        InvalidInput: login out of bounds or empty password
        HashingFailure: the password cannot be hashed
        NameConflict: a user with this login already exists
    """
    data = validate_input(UserCreate, login=login, password=password, details=details or {})
    password_hash = hash_password(data.password)
    return await create_user_unhashed(db, data.login, password_hash, data.details)


async def create_user_unhashed(
    db: AsyncSession,
    login: str,
    password_hash: str,
    details: Optional[Dict[str, Any]] = None,
) -> UserResponse:
    """
    Register a user from an already computed password hash.

    Used when committing a staged registration, which hashed the password at
    staging time.

    Raises:
        InvalidInput: login or hash out of bounds
        NameConflict: a user with this login already exists
    """
    data = validate_input(UserCreateHashed, login=login, password_hash=password_hash, details=details or {})

    try:
        async with db.begin_nested():
            await db.execute(
                insert(User).values(login=data.login, password_hash=data.password_hash, details=data.details)
            )
    except IntegrityError:
        log_database_interaction("Inserting user", {"login": login}, error="Already exists")
        raise NameConflict("A user with this login already exists")

    log.info("Registered user %s", login)
    log_database_interaction("Inserting user", {"login": login})
    return UserResponse(login=data.login, password_hash=data.password_hash, details=data.details)


async def delete_user(db: AsyncSession, login: str) -> None:
    """
    Delete a user: memberships, then login sessions, then the user row, in one unit.

    Raises:
        NotFound: if no user has this login
    """
    async with db.begin_nested():
        await db.execute(delete(users_groups).where(users_groups.c.user_login == login))
        sessions = await delete_user_sessions(db, login)
        result = await db.execute(delete(User).where(User.login == login))

        if result.rowcount == 0:
            # Leaving the block with an error rolls the cleanup back too
            log_database_interaction("Deleting user", {"login": login}, error="Not found")
            raise NotFound("This user cannot be found")

    log.info("Deleted user %s and %d login sessions", login, sessions)
    log_database_interaction("Deleting user", {"login": login, "sessions": sessions})


async def verify_password(db: AsyncSession, login: str, password: str) -> UserResponse:
    """
    Check a user's password.

    Returns:
        The verified user

    Raises:
        NotFound: if no user has this login
        Unauthorized: if the password does not match
    """
    user = await get_user(db, login)

    if not verify_password_hash(user.password_hash, password):
        log.debug("Invalid password for %s", login)
        raise Unauthorized("Invalid password")

    return user


async def login_user(db: AsyncSession, login: str, password: str) -> str:
    """
    Verify credentials and issue a login session.

    Returns:
        Token of the new session

    Raises:
        NotFound: if no user has this login
        Unauthorized: if the password does not match
    """
    await verify_password(db, login, password)
    return await create_session(db, login)


async def logout_user(db: AsyncSession, token: str) -> None:
    """
    Delete the login session behind a token.

    Raises:
        NotFound: unknown or already deleted token
    """
    await delete_session_by_token(db, token)


async def user_has_permission(db: AsyncSession, login: str, permission_name: str) -> bool:
    """Check a permission through the user's groups. Missing users have no permissions."""
    return await has_permission(db, login, permission_name)


async def list_user_permissions(db: AsyncSession, login: str) -> List[str]:
    """
    Get the sorted permission names reachable through the user's groups.

    Raises:
        NotFound: if no user has this login
    """
    if not await user_exists(db, login):
        raise NotFound("This user cannot be found")

    return await get_user_permissions(db, login)


async def grant_group(db: AsyncSession, login: str, group_name: str) -> bool:
    """
    Add a user to a group. Granting an existing membership is a no-op.

    Returns:
        True if a new membership was created, False if it already existed

    Raises:
        NotFound: if the user does not exist
        GroupNotFound: if the group does not exist
    """
    log_data = {"login": login, "group_name": group_name}

    if not await user_exists(db, login):
        log_database_interaction("Granting user a group", log_data, error="User not found")
        raise NotFound("This user cannot be found")

    if not await group_exists(db, group_name):
        log_database_interaction("Granting user a group", log_data, error="Group not found")
        raise GroupNotFound()

    if await _membership_exists(db, login, group_name):
        log_database_interaction("Granting user a group", log_data)
        return False

    try:
        async with db.begin_nested():
            await db.execute(insert(users_groups).values(user_login=login, group_name=group_name))
    except IntegrityError:
        # Lost a race: either an identical membership or a concurrent delete
        if not await user_exists(db, login):
            raise NotFound("This user cannot be found")
        if not await group_exists(db, group_name):
            raise GroupNotFound()
        return False

    log.info("Granted group %s to user %s", group_name, login)
    log_database_interaction("Granting user a group", log_data)
    return True


async def revoke_group(db: AsyncSession, login: str, group_name: str) -> None:
    """
    Remove a user from a group.

    Raises:
        NotFound: if the user does not exist
        GroupNotFound: if the group does not exist
        NotGranted: if the user was never a member
    """
    log_data = {"login": login, "group_name": group_name}
    result = await db.execute(
        delete(users_groups).where(
            users_groups.c.user_login == login,
            users_groups.c.group_name == group_name,
        )
    )

    if result.rowcount > 0:
        log.info("Revoked group %s from user %s", group_name, login)
        log_database_interaction("Revoking a group from user", log_data)
        return

    if not await user_exists(db, login):
        log_database_interaction("Revoking a group from user", log_data, error="User not found")
        raise NotFound("This user cannot be found")

    if not await group_exists(db, group_name):
        log_database_interaction("Revoking a group from user", log_data, error="Group not found")
        raise GroupNotFound()

    log_database_interaction("Revoking a group from user", log_data, error="Not a member")
    raise NotGranted("The user is not a member of this group")
