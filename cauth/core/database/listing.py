"""
Ordering and pagination shared by every ``list`` operation.
"""
from enum import Enum
from typing import Any

from sqlalchemy import Select

from cauth.core import config
from cauth.core.errors import InvalidInput


class Order(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


def paginate(
    stmt: Select,
    column: Any,
    order: Order | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> Select:
    """
    Apply ordering by ``column`` plus offset/limit to a select.

    Defaults: ascending, offset 0, ``DEFAULT_PAGE_SIZE`` rows. The limit is
    capped at ``MAX_PAGE_SIZE``.

    Raises:
        InvalidInput: on an unknown order or a negative offset or limit
    """
    try:
        order = Order(order) if order is not None else Order.ASCENDING
    except ValueError:
        raise InvalidInput(f"Unknown order: {order}")
    offset = 0 if offset is None else offset
    limit = config.DEFAULT_PAGE_SIZE if limit is None else limit

    if offset < 0 or limit < 0:
        raise InvalidInput("Offset and limit must not be negative")

    ordering = column.asc() if order is Order.ASCENDING else column.desc()
    return stmt.order_by(ordering).offset(offset).limit(min(limit, config.MAX_PAGE_SIZE))
