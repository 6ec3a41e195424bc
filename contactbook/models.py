"""Database models for the Contacts API.

This module defines SQLAlchemy ORM models used by the application.
"""

import enum
import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import deferred, relationship

from .database import Base


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the way it is stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_reset_token(token: str) -> str:
    """Return the SHA-256 hex digest stored for a raw password reset token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class Role(str, enum.Enum):
    """User roles. ``ADMIN`` is never assigned through the API."""

    USER = "USER"
    ADMIN = "ADMIN"


class ContactType(str, enum.Enum):
    """Kinds of contact."""

    PERSONAL = "PERSONAL"
    PROFESSIONAL = "PROFESSIONAL"


class User(Base):
    """
    SQLAlchemy model representing an application user.

    The password hash and the password reset fields are deferred: regular
    queries never load them, callers that need them ask for them with
    ``undefer``.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(30), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(Enum(Role), default=Role.USER, nullable=False)
    password = deferred(Column(String(255), nullable=False))
    password_changed_at = deferred(Column(DateTime, nullable=True))
    password_reset_token = deferred(Column(String(64), nullable=True, index=True))
    password_reset_expires = deferred(Column(DateTime, nullable=True))
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    #: List of contacts owned by the user
    contacts = relationship(
        "Contact",
        back_populates="owner",
        cascade="all, delete",
    )

    @property
    def full_name(self) -> str | None:
        """First and last name joined, or ``None`` if either is missing."""
        if not self.first_name or not self.last_name:
            return None
        return f"{self.first_name} {self.last_name}"

    def is_password_changed_after(self, issued_at: datetime) -> bool:
        """
        Check whether the password changed after a token was issued.

        Args:
            issued_at (datetime): Naive UTC issue time of the token.

        Returns:
            bool: ``True`` if the token predates the last password change.
        """
        if self.password_changed_at is None:
            return False
        return issued_at < self.password_changed_at

    def create_password_reset_token(self, expires_minutes: int) -> str:
        """
        Generate a password reset token.

        Only the SHA-256 hash of the token is kept on the user, together
        with its expiry. The raw token is returned so it can be emailed.

        Args:
            expires_minutes (int): Token lifetime.

        Returns:
            str: Raw reset token.
        """
        token = secrets.token_hex(32)
        self.password_reset_token = hash_reset_token(token)
        self.password_reset_expires = utcnow() + timedelta(minutes=expires_minutes)
        return token

    def clear_password_reset(self) -> None:
        """Forget any pending password reset."""
        self.password_reset_token = None
        self.password_reset_expires = None


class Contact(Base):
    """
    SQLAlchemy model representing a contact entry.

    Each contact belongs to exactly one user.
    """

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(30), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    type = Column(Enum(ContactType), default=ContactType.PERSONAL, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    #: Identifier of the owning user
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    #: Reference to the owning User object
    owner = relationship("User", back_populates="contacts")
