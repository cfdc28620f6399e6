"""
Group store: groups and their permission grants.
"""
from typing import Dict, List, Optional
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cauth.core.database.listing import Order, paginate
from cauth.core.errors import NameConflict, NotFound, PermissionNotFound, PermissionNotGranted
from cauth.core.validation import validate_input
from cauth.features.groups.models import Group, groups_permissions
from cauth.features.groups.schemas import GroupCreate, GroupResponse
from cauth.features.permissions.store import permission_exists
from cauth.features.users.models import users_groups
from cauth.utils import get_logger, log_database_interaction


log = get_logger(__name__)


# ============================================================================
# Helpers
# ============================================================================

async def group_exists(db: AsyncSession, name: str) -> bool:
    result = await db.execute(select(Group.name).where(Group.name == name))
    return result.scalar_one_or_none() is not None


async def _edge_exists(db: AsyncSession, name: str, permission_name: str) -> bool:
    result = await db.execute(
        select(groups_permissions.c.group_name).where(
            groups_permissions.c.group_name == name,
            groups_permissions.c.permission_name == permission_name,
        )
    )
    return result.first() is not None


async def _permissions_by_group(db: AsyncSession, names: List[str]) -> Dict[str, List[str]]:
    """Map each group name to its sorted permission names."""
    granted: Dict[str, List[str]] = {name: [] for name in names}
    if not names:
        return granted

    result = await db.execute(
        select(groups_permissions.c.group_name, groups_permissions.c.permission_name)
        .where(groups_permissions.c.group_name.in_(names))
        .order_by(groups_permissions.c.permission_name)
    )
    for group_name, permission_name in result.all():
        granted[group_name].append(permission_name)
    return granted


async def _add_grant(db: AsyncSession, name: str, permission_name: str) -> bool:
    """
    Insert a grant edge for an existing group. Returns False if it was already there.

    Raises:
        PermissionNotFound: if the permission does not exist
    """
    if not await permission_exists(db, permission_name):
        raise PermissionNotFound(f'Permission "{permission_name}" not found')

    if await _edge_exists(db, name, permission_name):
        return False

    try:
        async with db.begin_nested():
            await db.execute(insert(groups_permissions).values(group_name=name, permission_name=permission_name))
    except IntegrityError:
        # Lost a race against an identical grant, or the group vanished meanwhile
        if not await group_exists(db, name):
            raise NotFound("Group with this name cannot be found")
        return False

    return True


# ============================================================================
# Group Operations
# ============================================================================

async def list_groups(
    db: AsyncSession,
    order: Optional[Order] = None,
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[GroupResponse]:
    """List groups ordered by name, each with its permission names."""
    stmt = paginate(select(Group), Group.name, order, offset, limit)
    result = await db.execute(stmt)
    groups = result.scalars().all()

    granted = await _permissions_by_group(db, [group.name for group in groups])
    return [
        GroupResponse(name=group.name, description=group.description, permissions=granted[group.name])
        for group in groups
    ]


async def get_group(db: AsyncSession, name: str) -> GroupResponse:
    """
    Get a group by name.

    Raises:
        NotFound: if no group has this name
    """
    result = await db.execute(select(Group).where(Group.name == name))
    group = result.scalar_one_or_none()

    if group is None:
        raise NotFound("Group with this name cannot be found")

    granted = await _permissions_by_group(db, [group.name])
    return GroupResponse(name=group.name, description=group.description, permissions=granted[group.name])


async def create_group(
    db: AsyncSession,
    name: str,
    description: str = "",
    permissions: Optional[List[str]] = None,
) -> GroupResponse:
    """
    Create a group and grant it the listed permissions, all or nothing.

    Raises:
        InvalidInput: name or description out of bounds
        NameConflict: a group with this name already exists
        PermissionNotFound: one of the listed permissions does not exist
    """
    data = validate_input(GroupCreate, name=name, description=description, permissions=permissions or [])
    permission_names = sorted(set(data.permissions))
    log_data = {"name": name, "permissions": permission_names}

    try:
        async with db.begin_nested():
            await db.execute(insert(Group).values(name=data.name, description=data.description))

            for permission_name in permission_names:
                await _add_grant(db, data.name, permission_name)
    except IntegrityError:
        log_database_interaction("Inserting group", log_data, error="Already exists")
        raise NameConflict("Group with this name already exists")
    except PermissionNotFound as e:
        log_database_interaction("Inserting group", log_data, error=e.message)
        raise

    log.info("Created group %s with %d permissions", name, len(permission_names))
    log_database_interaction("Inserting group", log_data)
    return GroupResponse(name=data.name, description=data.description, permissions=permission_names)


async def delete_group(db: AsyncSession, name: str) -> None:
    """
    Delete a group together with its grants and memberships.

    Raises:
        NotFound: if no group has this name
    """
    async with db.begin_nested():
        await db.execute(delete(groups_permissions).where(groups_permissions.c.group_name == name))
        await db.execute(delete(users_groups).where(users_groups.c.group_name == name))
        result = await db.execute(delete(Group).where(Group.name == name))

    if result.rowcount == 0:
        log_database_interaction("Deleting group", {"name": name}, error="Not found")
        raise NotFound("Group with this name cannot be found")

    log.info("Deleted group %s", name)
    log_database_interaction("Deleting group", {"name": name})


async def group_has_permission(db: AsyncSession, name: str, permission_name: str) -> bool:
    """
    Check whether a group holds a grant for the permission.

    Raises:
        NotFound: if no group has this name
    """
    if not await group_exists(db, name):
        raise NotFound("Group with this name cannot be found")

    return await _edge_exists(db, name, permission_name)


async def grant_permission(db: AsyncSession, name: str, permission_name: str) -> bool:
    """
    Grant a permission to a group. Granting an existing edge is a no-op.

    Returns:
        True if a new grant was created, False if it already existed

    Raises:
        NotFound: if the group does not exist
        PermissionNotFound: if the permission does not exist
    """
    log_data = {"name": name, "permission_name": permission_name}

    if not await group_exists(db, name):
        log_database_interaction("Granting group a permission", log_data, error="Group not found")
        raise NotFound("Group with this name cannot be found")

    try:
        created = await _add_grant(db, name, permission_name)
    except (NotFound, PermissionNotFound) as e:
        log_database_interaction("Granting group a permission", log_data, error=e.message)
        raise

    if created:
        log.info("Granted permission %s to group %s", permission_name, name)
    log_database_interaction("Granting group a permission", log_data)
    return created


async def revoke_permission(db: AsyncSession, name: str, permission_name: str) -> None:
    """
    Revoke a permission from a group.

    An existing edge is removed even if the permission itself was deleted,
    so dangling grants can be cleaned up.

    Raises:
        NotFound: if the group does not exist
        PermissionNotFound: if the permission does not exist
        PermissionNotGranted: if the group never had this permission
    """
    log_data = {"name": name, "permission_name": permission_name}
    result = await db.execute(
        delete(groups_permissions).where(
            groups_permissions.c.group_name == name,
            groups_permissions.c.permission_name == permission_name,
        )
    )

    if result.rowcount > 0:
        log.info("Revoked permission %s from group %s", permission_name, name)
        log_database_interaction("Revoking a permission from group", log_data)
        return

    if not await group_exists(db, name):
        log_database_interaction("Revoking a permission from group", log_data, error="Group not found")
        raise NotFound("Group with this name cannot be found")

    if not await permission_exists(db, permission_name):
        log_database_interaction("Revoking a permission from group", log_data, error="Permission not found")
        raise PermissionNotFound()

    log_database_interaction("Revoking a permission from group", log_data, error="Permission not granted")
    raise PermissionNotGranted()
