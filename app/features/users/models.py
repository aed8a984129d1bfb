"""
User model.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, IntegerIdMixin, TimestampMixin


class User(Base, IntegerIdMixin, TimestampMixin):
    """
    A person who can authenticate and belong to groups.

    The password credential is stored as an opaque hash; nothing in the
    authorization core reads it.
    """
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username!r})>"
