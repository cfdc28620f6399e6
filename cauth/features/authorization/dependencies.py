"""
Permission checking across User -> Group -> Permission.

A user holds a permission when any of their groups holds a grant for it.
Absence of a permission is never an error for the checks; only
``require_permission`` raises.
"""
from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cauth.core.errors import Unauthorized
from cauth.features.groups.models import groups_permissions
from cauth.features.sessions.models import LoginSession
from cauth.features.users.models import users_groups
from cauth.utils import get_logger


log = get_logger(__name__)


async def has_permission(db: AsyncSession, login: str, permission_name: str) -> bool:
    """
    Check if a user holds a permission through any of their groups.

    Args:
        db: Database session
        login: User login
        permission_name: Permission to look for

    Returns:
        True if a matching membership + grant pair exists, False otherwise
    """
    stmt = (
        select(groups_permissions.c.permission_name)
        .join(users_groups, users_groups.c.group_name == groups_permissions.c.group_name)
        .where(
            users_groups.c.user_login == login,
            groups_permissions.c.permission_name == permission_name,
        )
        .limit(1)
    )
    result = await db.execute(stmt)
    granted = result.first() is not None

    log.debug("User %s %s permission %s", login, "has" if granted else "lacks", permission_name)
    return granted


async def token_has_permission(db: AsyncSession, token: str, permission_name: str) -> bool:
    """
    Check if the owner of a session token holds a permission.

    Unknown or deleted tokens yield False.
    """
    stmt = (
        select(groups_permissions.c.permission_name)
        .join(users_groups, users_groups.c.group_name == groups_permissions.c.group_name)
        .join(LoginSession, LoginSession.user_login == users_groups.c.user_login)
        .where(
            LoginSession.token == token,
            groups_permissions.c.permission_name == permission_name,
        )
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.first() is not None


async def get_user_permissions(db: AsyncSession, login: str) -> List[str]:
    """
    Get all permission names a user holds through their groups.

    Returns:
        Sorted, deduplicated permission names
    """
    stmt = (
        select(groups_permissions.c.permission_name)
        .join(users_groups, users_groups.c.group_name == groups_permissions.c.group_name)
        .where(users_groups.c.user_login == login)
        .distinct()
        .order_by(groups_permissions.c.permission_name)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def require_permission(db: AsyncSession, token: str, permission_name: str) -> str:
    """
    Guard for privileged operations.

    Usage:
        login = await require_permission(db, token, "cauth:users:delete")
        await users_store.delete_user(db, target_login)

    Returns:
        Login of the token's owner

    Raises:
        Unauthorized: unknown token, or the owner lacks the permission
    """
    result = await db.execute(select(LoginSession.user_login).where(LoginSession.token == token))
    login = result.scalar_one_or_none()

    if login is None:
        log.info("Rejected unknown session token for %s", permission_name)
        raise Unauthorized("Login session not found")

    if not await has_permission(db, login, permission_name):
        log.info("User %s denied permission %s", login, permission_name)
        raise Unauthorized(f"Permission denied: {permission_name}")

    return login
