"""
SQLAlchemy declarative base and common model utilities.

All SQLAlchemy models should inherit from Base.
"""
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        from cauth.core.database.base import Base

        class Permission(Base):
            __tablename__ = "permissions"

            name: Mapped[str] = mapped_column(String(255), primary_key=True)
    """
    pass


class CreatedAtMixin:
    """
    Mixin to add a created_at timestamp to models.

    Usage:
        class LoginSession(Base, CreatedAtMixin):
            __tablename__ = "login_sessions"
            id: Mapped[int] = mapped_column(primary_key=True)
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
