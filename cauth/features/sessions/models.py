"""
Login session model.
"""
from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from cauth.core import config
from cauth.core.database.base import Base, CreatedAtMixin


class LoginSession(Base, CreatedAtMixin):
    """
    Authentication token issued to a user.

    Sessions have no expiry: deleting the row (logout, or deletion of the
    owning user) is the only way to invalidate the token.
    """
    __tablename__ = "login_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_login: Mapped[str] = mapped_column(
        String(config.NAME_MAX_LENGTH),
        ForeignKey("users.login"),
        nullable=False,
        index=True
    )
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<LoginSession(id={self.id}, user_login={self.user_login!r})>"
