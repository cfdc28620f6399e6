"""
Group model and the group-permission grant table.
"""
from sqlalchemy import String, ForeignKey, Table, Column
from sqlalchemy.orm import Mapped, mapped_column

from cauth.core import config
from cauth.core.database.base import Base


# Group-Permission grants. permission_name carries no foreign key: deleting a
# permission does not revoke it from groups.
groups_permissions = Table(
    "groups_permissions",
    Base.metadata,
    Column("group_name", String(config.NAME_MAX_LENGTH), ForeignKey("groups.name"), primary_key=True),
    Column("permission_name", String(config.NAME_MAX_LENGTH), primary_key=True, index=True),
)


class Group(Base):
    """
    Named collection of permissions, assignable to users.

    The group owns its grant edges in ``groups_permissions``.
    """
    __tablename__ = "groups"

    name: Mapped[str] = mapped_column(String(config.NAME_MAX_LENGTH), primary_key=True)
    description: Mapped[str] = mapped_column(String(config.DESCRIPTION_MAX_LENGTH), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<Group(name={self.name!r})>"
