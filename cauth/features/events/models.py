"""
Pending (staged) event models, one table per variant.

A row lives only between staging and its commit or cancel. Logins carry no
foreign key so that a staged action outliving its user still fails cleanly
on commit instead of blocking the user's deletion.
"""
from typing import Any, Dict
from sqlalchemy import String, JSON
from sqlalchemy.orm import Mapped, mapped_column

from cauth.core import config
from cauth.core.database.base import Base, CreatedAtMixin


class StagedEventMixin(CreatedAtMixin):
    """Id and capability key shared by every pending event table."""
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(255), nullable=False)


class UserRegisterEvent(Base, StagedEventMixin):
    """Pending registration. The password is hashed at staging time."""
    __tablename__ = "user_register_events"

    login: Mapped[str] = mapped_column(String(config.NAME_MAX_LENGTH), nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<UserRegisterEvent(id={self.id}, login={self.login!r})>"


class UserLoginEvent(Base, StagedEventMixin):
    """Pre-authenticated login awaiting its key before a session is issued."""
    __tablename__ = "user_login_events"

    user_login: Mapped[str] = mapped_column(String(config.NAME_MAX_LENGTH), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<UserLoginEvent(id={self.id}, user_login={self.user_login!r})>"


class UserDeleteEvent(Base, StagedEventMixin):
    """Pending account deletion."""
    __tablename__ = "user_delete_events"

    user_login: Mapped[str] = mapped_column(String(config.NAME_MAX_LENGTH), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<UserDeleteEvent(id={self.id}, user_login={self.user_login!r})>"
