"""
Permission model.

A permission is a named capability string (e.g. "users:delete") and is
referenced by name everywhere, never by a surrogate id.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from cauth.core import config
from cauth.core.database.base import Base


class Permission(Base):
    """
    Named capability with a human-readable description.

    Deleting a permission does not revoke it from groups: grants reference the
    name only, so a dangling grant can outlive the permission row.
    """
    __tablename__ = "permissions"

    name: Mapped[str] = mapped_column(String(config.NAME_MAX_LENGTH), primary_key=True)
    description: Mapped[str] = mapped_column(String(config.DESCRIPTION_MAX_LENGTH), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Permission(name={self.name!r})>"
