"""Credential store: persistence operations for :class:`models.User`.

All writes go through :class:`UserStore` so that two rules hold whatever
the caller: plaintext passwords are hashed exactly once before they reach
the model, and unique index violations surface as
:class:`errors.ValidationError` rather than database errors.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

import pydantic
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ValidationError
from models import AuthMethod, User
from schemas import UserCreate, UserUpdate
from security import hash_password_async

logger = logging.getLogger(__name__)


def _validation_details(exc: pydantic.ValidationError) -> Dict[str, str]:
    details: Dict[str, str] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
        message = err.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.setdefault(field, message)
    return details


def _uniqueness_details(exc: IntegrityError) -> Dict[str, str]:
    text = str(exc.orig).lower()
    if "email" in text:
        return {"email": "Email address is already registered"}
    if "username" in text:
        return {"username": "Username is already taken"}
    return {"__root__": "User already exists"}


class UserStore:
    """Async repository for users bound to one database session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: int) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def _first(self, stmt) -> Optional[User]:
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return await self._first(select(User).where(User.email == email.strip().lower()))

    async def find_by_username(self, username: str) -> Optional[User]:
        if not username:
            return None
        return await self._first(
            select(User).where(User.username == username.strip().lower())
        )

    async def find_by_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        return await self._first(select(User).where(User.verification_token == token))

    async def find_by_auth_method(self, provider: str, provider_id: str) -> Optional[User]:
        stmt = (
            select(User)
            .join(AuthMethod, AuthMethod.user_id == User.id)
            .where(AuthMethod.provider == provider, AuthMethod.provider_id == provider_id)
        )
        return await self._first(stmt)

    async def _set_password(self, user: User, password: str) -> None:
        user.password_hash = await hash_password_async(password)

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            details = _uniqueness_details(exc)
            logger.info("Rejected write violating a unique constraint: %s", details)
            raise ValidationError(details) from exc

    async def create(
        self,
        fields: Union[UserCreate, Mapping[str, Any]],
        *,
        verification_token: Optional[str] = None,
        is_verified: bool = False,
    ) -> User:
        """Validate ``fields`` and persist a new user.

        Raises :class:`errors.ValidationError` if a field is missing or
        malformed, or if the username or email is already taken.
        """
        if not isinstance(fields, UserCreate):
            try:
                fields = UserCreate.model_validate(dict(fields))
            except pydantic.ValidationError as exc:
                raise ValidationError(_validation_details(exc)) from exc

        user = User(
            username=fields.username,
            display_name=fields.display_name,
            email=fields.email,
            profile_image=fields.profile_image,
            bio=fields.bio,
            verification_token=verification_token,
            verification_sent_at=datetime.now(timezone.utc) if verification_token else None,
            is_verified=is_verified,
            auth_methods=[],
        )
        if fields.password:
            await self._set_password(user, fields.password)

        self.session.add(user)
        await self._commit()
        logger.info("Created user id=%s username=%s", user.id, user.username)
        return user

    async def update(self, user: User, fields: Mapping[str, Any]) -> User:
        """Apply ``fields`` to ``user`` and persist.

        The whole mapping is validated, and a ``password`` entry hashed,
        before any attribute changes, so a rejected update leaves ``user``
        untouched. An existing hash is never hashed again.
        """
        try:
            changes = UserUpdate.model_validate(dict(fields)).model_dump(exclude_unset=True)
        except pydantic.ValidationError as exc:
            raise ValidationError(_validation_details(exc)) from exc

        password = changes.pop("password", None)
        if password is not None:
            changes["password_hash"] = await hash_password_async(password)

        for key, value in changes.items():
            setattr(user, key, value)
        await self._commit()
        return user

    async def mark_verified(self, user: User) -> bool:
        """Mark ``user`` verified and clear the token it currently holds.

        The write is conditional on the stored token still matching, so of
        several callers holding the same token only one gets ``True``.
        """
        stmt = (
            update(User)
            .where(User.id == user.id, User.verification_token == user.verification_token)
            .values(is_verified=True, verification_token=None, verification_sent_at=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self._commit()
        if result.rowcount != 1:
            logger.info("Verification token for user id=%s was already consumed", user.id)
            return False
        await self.session.refresh(user)
        return True

    async def link_auth_method(self, user: User, provider: str, provider_id: str) -> User:
        """Attach an external identity to ``user`` unless already linked."""
        for method in user.auth_methods:
            if method.provider == provider and method.provider_id == provider_id:
                return user
        user.auth_methods.append(AuthMethod(provider=provider, provider_id=provider_id))
        await self._commit()
        logger.info("Linked %s identity to user id=%s", provider, user.id)
        return user
