"""
User model and the user-group membership table.
"""
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, Table, Column, JSON
from sqlalchemy.orm import Mapped, mapped_column

from cauth.core import config
from cauth.core.database.base import Base


# User-Group membership
users_groups = Table(
    "users_groups",
    Base.metadata,
    Column("user_login", String(config.NAME_MAX_LENGTH), ForeignKey("users.login"), primary_key=True),
    Column("group_name", String(config.NAME_MAX_LENGTH), ForeignKey("groups.name"), primary_key=True, index=True),
)


class User(Base):
    """
    User account keyed by login.

    The password is only ever stored as an Argon2 hash. Free-form account data
    lives in ``details``. Memberships and login sessions belong to the user and
    are removed with it.
    """
    __tablename__ = "users"

    login: Mapped[str] = mapped_column(String(config.NAME_MAX_LENGTH), primary_key=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<User(login={self.login!r})>"
