"""
Seed script to populate the administrative permissions and the root group.

Run this script once at process start, after database initialization, to create:
- Default administrative permissions
- The root group holding every one of them

Running it again is a no-op; permissions added to DEFAULT_PERMISSIONS later are
granted to an existing root group.

Usage:
    python -m scripts.seed_permissions
"""
import asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from cauth.core import config
from cauth.core.database.engine import get_db, init_db
from cauth.core.errors import NameConflict
from cauth.features.groups.store import create_group, grant_permission, group_exists
from cauth.features.permissions.store import create_permission
from cauth.utils import get_logger


log = get_logger(__name__)


DEFAULT_PERMISSIONS = [
    # Permission management
    ("cauth:permissions:get", "View permissions"),
    ("cauth:permissions:post", "Create permissions"),
    ("cauth:permissions:delete", "Delete permissions"),

    # Group management
    ("cauth:groups:get", "View groups"),
    ("cauth:groups:post", "Create groups"),
    ("cauth:groups:update", "Grant and revoke group permissions"),
    ("cauth:groups:delete", "Delete groups"),

    # User management
    ("cauth:users:get", "View users"),
    ("cauth:users:post", "Create users"),
    ("cauth:users:update", "Grant and revoke user groups"),
    ("cauth:users:delete", "Delete users"),

    # Staged events
    ("cauth:events:get", "View pending events"),
]


async def seed_permissions(db: AsyncSession) -> list[str]:
    """
    Create default permissions, skipping the ones that already exist.

    Returns:
        Names of the permissions created by this run
    """
    log.info("Creating default permissions...")
    created = []

    for name, description in DEFAULT_PERMISSIONS:
        try:
            await create_permission(db, name, description)
        except NameConflict:
            log.debug("Permission '%s' already exists, skipping", name)
            continue
        created.append(name)

    log.info("Created %d permissions", len(created))
    return created


async def seed_root_group(db: AsyncSession) -> int:
    """
    Create the root group with all default permissions, or top up an existing one.

    Returns:
        Number of permissions newly granted to the root group
    """
    names = [name for name, _ in DEFAULT_PERMISSIONS]
    group_name = config.ROOT_GROUP_NAME

    if not await group_exists(db, group_name):
        await create_group(db, group_name, "Administrators with every cauth permission", names)
        log.info("Created group '%s' with %d permissions", group_name, len(names))
        return len(names)

    granted = 0
    for name in names:
        if await grant_permission(db, group_name, name):
            granted += 1

    log.info("Group '%s' already exists, granted %d missing permissions", group_name, granted)
    return granted


async def seed_defaults(db: AsyncSession) -> None:
    """Seed permissions, then the root group. Safe to run on every start."""
    await seed_permissions(db)
    await seed_root_group(db)


async def main():
    log.info("Starting permission seeding...")

    await init_db()

    async for db in get_db():
        await seed_defaults(db)

    log.info("Permission seeding completed successfully")


if __name__ == "__main__":
    asyncio.run(main())
