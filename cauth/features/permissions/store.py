"""
Permission store.

All functions take the caller's session as first argument; transaction
boundaries belong to the caller.
"""
from typing import List, Optional
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cauth.core.database.listing import Order, paginate
from cauth.core.errors import NameConflict, NotFound
from cauth.core.validation import validate_input
from cauth.features.permissions.models import Permission
from cauth.features.permissions.schemas import PermissionCreate, PermissionResponse
from cauth.utils import get_logger, log_database_interaction


log = get_logger(__name__)


async def list_permissions(
    db: AsyncSession,
    order: Optional[Order] = None,
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[PermissionResponse]:
    """List permissions ordered by name."""
    stmt = paginate(select(Permission), Permission.name, order, offset, limit)
    result = await db.execute(stmt)
    return [PermissionResponse.model_validate(row) for row in result.scalars().all()]


async def permission_exists(db: AsyncSession, name: str) -> bool:
    result = await db.execute(select(Permission.name).where(Permission.name == name))
    return result.scalar_one_or_none() is not None


async def get_permission(db: AsyncSession, name: str) -> PermissionResponse:
    """
    Get a permission by name.

    Raises:
        NotFound: if no permission has this name
    """
    result = await db.execute(select(Permission).where(Permission.name == name))
    permission = result.scalar_one_or_none()

    if permission is None:
        raise NotFound("Permission with this name cannot be found")

    return PermissionResponse.model_validate(permission)


async def create_permission(db: AsyncSession, name: str, description: str = "") -> PermissionResponse:
    """
    Create a permission.

    Uniqueness is enforced by the primary key, not by a pre-check.

    Raises:
        InvalidInput: name or description out of bounds
        NameConflict: a permission with this name already exists
    """
    data = validate_input(PermissionCreate, name=name, description=description)

    try:
        async with db.begin_nested():
            await db.execute(insert(Permission).values(**data.model_dump()))
    except IntegrityError:
        log_database_interaction("Inserting permission", {"name": name}, error="Already exists")
        raise NameConflict("Permission with this name already exists")

    log.info("Created permission %s", name)
    log_database_interaction("Inserting permission", {"name": name})
    return PermissionResponse(**data.model_dump())


async def delete_permission(db: AsyncSession, name: str) -> None:
    """
    Delete a permission by name. Grants referencing it are left untouched.

    Raises:
        NotFound: if no permission has this name
    """
    result = await db.execute(delete(Permission).where(Permission.name == name))

    if result.rowcount == 0:
        log_database_interaction("Deleting permission", {"name": name}, error="Not found")
        raise NotFound("Permission with this name cannot be found")

    log.info("Deleted permission %s", name)
    log_database_interaction("Deleting permission", {"name": name})
