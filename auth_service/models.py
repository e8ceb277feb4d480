"""SQLAlchemy models for the auth_service.

``User`` is the only aggregate; ``AuthMethod`` rows record the external
identities (e.g. a Google account) linked to it. The schema mirrors the
Alembic migrations under ``alembic/versions``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates

from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """ORM model representing an application user.

    Attributes
    ----------
    username, email:
        Unique identifiers, always stored trimmed and lowercased.
    password_hash:
        One-way hash of the password; ``None`` for accounts that only sign
        in through an external provider.
    verification_token:
        Outstanding email verification token, cleared once consumed.
    is_verified:
        Whether the email address has been confirmed.
    """

    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)
    username: str = Column(String(255), unique=True, index=True, nullable=False)
    display_name: str = Column(String(50), nullable=False)
    email: str = Column(String(320), unique=True, index=True, nullable=False)
    password_hash: Optional[str] = Column(String(255), nullable=True)
    verification_token: Optional[str] = Column(String(64), index=True, nullable=True)
    verification_sent_at: Optional[datetime] = Column(
        DateTime(timezone=True), nullable=True
    )
    is_verified: bool = Column(Boolean, default=False, nullable=False)
    profile_image: Optional[str] = Column(String(2048), nullable=True)
    bio: Optional[str] = Column(String(160), nullable=True)
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: datetime = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    auth_methods = relationship(
        "AuthMethod",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="AuthMethod.id",
        lazy="selectin",
    )

    @validates("username", "email")
    def _canonicalize(self, key: str, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    def __repr__(self) -> str:
        return f"<User id={self.id!r} username={self.username!r}>"


class AuthMethod(Base):
    """External identity linked to a :class:`User`."""

    __tablename__ = "auth_methods"
    __table_args__ = (
        UniqueConstraint("provider", "provider_id", name="uq_auth_methods_provider"),
    )

    id: int = Column(Integer, primary_key=True, index=True)
    user_id: int = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    provider: str = Column(String(50), nullable=False)
    provider_id: str = Column(String(255), nullable=False)
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    user = relationship("User", back_populates="auth_methods")

    def __repr__(self) -> str:
        return f"<AuthMethod provider={self.provider!r} provider_id={self.provider_id!r}>"
