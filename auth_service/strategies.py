"""Authentication strategies.

Every strategy exposes ``authenticate(credentials)`` which returns the
resolved :class:`models.User` or raises :class:`errors.AuthenticationError`.
The workflow depends only on that contract, so local and federated logins
share the same session handling.
"""

from __future__ import annotations

import abc
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

from authlib.integrations.starlette_client import OAuth, OAuthError
from starlette.requests import Request

from config import Settings
from errors import AuthenticationError, ValidationError
from models import User
from schemas import LoginRequest
from security import verify_dummy_password_async, verify_password_async
from store import UserStore

logger = logging.getLogger(__name__)

GOOGLE_PROVIDER = "google"
GOOGLE_METADATA_URL = "https://accounts.google.com/.well-known/openid-configuration"
USERNAME_MAX_LENGTH = 30
_NON_ALNUM = re.compile(r"[^a-z0-9]")


class AuthStrategy(abc.ABC):
    name: str

    def __init__(self, store: UserStore) -> None:
        self.store = store

    @abc.abstractmethod
    async def authenticate(self, credentials: Any) -> User:
        """Return the user matching ``credentials``."""


class LocalStrategy(AuthStrategy):
    """Email and password login for verified accounts."""

    name = "local"

    async def authenticate(self, credentials: LoginRequest) -> User:
        user = await self.store.find_by_email(credentials.email)
        if user is None:
            await verify_dummy_password_async(credentials.password)
            raise AuthenticationError("unknown email")
        if not user.has_password:
            await verify_dummy_password_async(credentials.password)
            raise AuthenticationError("account has no password")
        if not await verify_password_async(credentials.password, user.password_hash):
            raise AuthenticationError("wrong password")
        if not user.is_verified:
            raise AuthenticationError("email not verified")
        return user


@dataclass(frozen=True)
class FederatedIdentity:
    """Identity asserted by an external provider."""

    provider: str
    provider_id: str
    email: str
    email_verified: bool = False
    display_name: Optional[str] = None
    picture: Optional[str] = None


def _username_base(email: str) -> str:
    local_part = email.split("@", 1)[0].lower()
    return _NON_ALNUM.sub("", local_part)[:USERNAME_MAX_LENGTH] or "user"


def _http_url_or_none(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    parsed = urlparse(value)
    if parsed.scheme in {"http", "https"} and parsed.netloc:
        return value
    return None


class FederatedStrategy(AuthStrategy):
    """Base for provider logins: fetch an identity, then locate or create its user."""

    @abc.abstractmethod
    async def fetch_identity(self, credentials: Any) -> FederatedIdentity:
        """Complete the provider handshake and return the asserted identity."""

    async def authenticate(self, credentials: Any) -> User:
        identity = await self.fetch_identity(credentials)
        try:
            return await self.resolve_user(identity)
        except ValidationError as exc:
            logger.warning(
                "Could not resolve %s identity %s: %s",
                identity.provider,
                identity.provider_id,
                exc.details,
            )
            raise AuthenticationError("federated account could not be resolved") from exc

    async def resolve_user(self, identity: FederatedIdentity) -> User:
        user = await self.store.find_by_auth_method(identity.provider, identity.provider_id)
        if user is not None:
            return user

        user = await self.store.find_by_email(identity.email)
        if user is not None:
            if not identity.email_verified:
                raise AuthenticationError("unverified provider email matches an existing account")
            await self.store.link_auth_method(user, identity.provider, identity.provider_id)
            if not user.is_verified:
                await self.store.mark_verified(user)
            return user

        if not identity.email_verified:
            raise AuthenticationError("provider email is not verified")

        username = await self._available_username(identity.email)
        user = await self.store.create(
            {
                "username": username,
                "display_name": (identity.display_name or username)[:50],
                "email": identity.email,
                "profile_image": _http_url_or_none(identity.picture),
            },
            is_verified=True,
        )
        return await self.store.link_auth_method(user, identity.provider, identity.provider_id)

    async def _available_username(self, email: str, attempts: int = 5) -> str:
        base = _username_base(email)
        candidate = base
        for _ in range(attempts):
            if await self.store.find_by_username(candidate) is None:
                return candidate
            candidate = f"{base}{secrets.randbelow(10000):04d}"
        return f"{base}{secrets.token_hex(4)}"


def create_oauth(settings: Settings) -> OAuth:
    """Build the OAuth registry, registering Google when it is configured."""
    oauth = OAuth()
    if settings.google_enabled:
        oauth.register(
            name=GOOGLE_PROVIDER,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            server_metadata_url=GOOGLE_METADATA_URL,
            client_kwargs={"scope": "openid email profile"},
        )
    return oauth


class GoogleStrategy(FederatedStrategy):
    """Google sign-in through authlib's Starlette OAuth client."""

    name = GOOGLE_PROVIDER

    def __init__(self, store: UserStore, client: Any) -> None:
        super().__init__(store)
        self.client = client

    async def authorize_redirect(self, request: Request, redirect_uri: str):
        return await self.client.authorize_redirect(
            request,
            redirect_uri,
            prompt="select_account",
            access_type="offline",
        )

    async def fetch_identity(self, credentials: Request) -> FederatedIdentity:
        try:
            token = await self.client.authorize_access_token(credentials)
            userinfo = token.get("userinfo") or await self.client.userinfo(token=token)
        except OAuthError as exc:
            raise AuthenticationError(f"google rejected the callback: {exc.error}") from exc

        if not userinfo or not userinfo.get("sub") or not userinfo.get("email"):
            raise AuthenticationError("google returned an incomplete profile")

        return FederatedIdentity(
            provider=GOOGLE_PROVIDER,
            provider_id=str(userinfo["sub"]),
            email=str(userinfo["email"]).strip().lower(),
            email_verified=bool(userinfo.get("email_verified")),
            display_name=userinfo.get("name"),
            picture=userinfo.get("picture"),
        )
