"""Pydantic schemas for request and response models used in the auth_service.

Request schemas validate and normalise user input; response schemas define
the sanitised, client-facing view of a user. Wire names are camelCase
(``displayName``, ``profileImage``, ``loggedIn``).
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


def _check_profile_image(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Invalid URL for profile image")
    return value


class UserCreate(BaseModel):
    """Fields accepted when creating a user.

    ``password`` is optional here because accounts created through an
    external provider have none; :class:`RegisterRequest` requires it.
    """

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    username: str = Field(min_length=1)
    display_name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: Optional[str] = Field(default=None, min_length=8)
    profile_image: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=160)

    @field_validator("username")
    @classmethod
    def _username_alphanumeric(cls, value: str) -> str:
        if not USERNAME_PATTERN.match(value):
            raise ValueError("Username contains invalid characters")
        return value.lower()

    @field_validator("email")
    @classmethod
    def _email_lowercase(cls, value: str) -> str:
        return value.lower()

    @field_validator("profile_image")
    @classmethod
    def _profile_image_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_profile_image(value)


class RegisterRequest(UserCreate):
    """Schema for registration requests."""

    password: str = Field(min_length=8)


class UserUpdate(BaseModel):
    """Fields that may change on an existing user.

    Only fields present in the input are applied, so callers validate with
    ``model_dump(exclude_unset=True)``. Username and email are fixed after
    creation and are rejected like any other unknown key.
    """

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    display_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    password: Optional[str] = Field(default=None, min_length=8)
    profile_image: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=160)
    verification_token: Optional[str] = Field(default=None, max_length=64)
    verification_sent_at: Optional[datetime] = None
    is_verified: bool = False

    @field_validator("display_name", "password")
    @classmethod
    def _not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Field cannot be empty")
        return value

    @field_validator("profile_image")
    @classmethod
    def _profile_image_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_profile_image(value)


class LoginRequest(BaseModel):
    """Schema for local login requests."""

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
    )

    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class AuthMethodOut(_CamelModel):
    provider: str
    provider_id: str


class UserOut(_CamelModel):
    """Sanitised user: no password hash, verification state or token."""

    id: int
    username: str
    display_name: str
    email: str
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    auth_methods: List[AuthMethodOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LoginResponse(_CamelModel):
    logged_in: bool = True
    user: UserOut


class AuthStatus(_CamelModel):
    logged_in: bool
    user: Optional[UserOut] = None


class MessageResponse(BaseModel):
    message: str
