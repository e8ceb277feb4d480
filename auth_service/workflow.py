"""Auth workflow: registration, verification, login, session check and logout.

An account moves through ``pending verification -> verified`` and a
verified account can open a session. The session itself is the
``request.session`` mapping managed by Starlette's ``SessionMiddleware``;
this module only reads and writes the user id stored in it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, MutableMapping, Optional

from config import Settings
from errors import AuthenticationError, NotFoundError, ValidationError
from mailer import Mailer
from models import User
from schemas import RegisterRequest
from security import generate_verification_token
from store import UserStore
from strategies import AuthStrategy

logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user_id"

Session = MutableMapping[str, Any]
Scheduler = Callable[..., None]


class AuthWorkflow:
    def __init__(self, store: UserStore, mailer: Mailer, settings: Settings) -> None:
        self.store = store
        self.mailer = mailer
        self.settings = settings

    async def register(
        self, data: RegisterRequest, schedule: Optional[Scheduler] = None
    ) -> User:
        """Create an unverified user and queue the verification email.

        ``schedule`` receives the mail coroutine function and its argument
        (e.g. ``BackgroundTasks.add_task``); when omitted the email is sent
        before returning. Delivery errors never fail the registration.
        """
        user = await self.store.create(data, verification_token=generate_verification_token())
        logger.info("Registered user %s, verification pending", user.username)
        if schedule is not None:
            schedule(self.mailer.send_verification_email, user)
        else:
            await self.mailer.send_verification_email(user)
        return user

    def _token_expired(self, user: User) -> bool:
        ttl = self.settings.verification_token_ttl_hours
        if not ttl or user.verification_sent_at is None:
            return False
        sent_at = user.verification_sent_at
        if sent_at.tzinfo is None:
            sent_at = sent_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - sent_at > timedelta(hours=ttl)

    async def verify(self, token: Optional[str]) -> User:
        token = (token or "").strip()
        if not token:
            raise ValidationError({"token": "Verification token is required"})

        user = await self.store.find_by_token(token)
        if user is None or self._token_expired(user):
            logger.info("Verification attempted with an unknown or expired token")
            raise NotFoundError("Invalid or expired verification token")

        if not await self.store.mark_verified(user):
            raise NotFoundError("Invalid or expired verification token")
        logger.info("Verified email for user %s", user.username)
        return user

    async def login(self, session: Session, strategy: AuthStrategy, credentials: Any) -> User:
        """Authenticate with ``strategy`` and bind the user to ``session``.

        :class:`errors.AuthenticationError` from the strategy propagates
        and leaves the session untouched.
        """
        try:
            user = await strategy.authenticate(credentials)
        except AuthenticationError as exc:
            logger.info("%s login failed: %s", strategy.name, exc.reason)
            raise
        session.clear()
        session[SESSION_USER_KEY] = user.id
        logger.info("User %s logged in via %s", user.username, strategy.name)
        return user

    async def check(self, session: Session) -> Optional[User]:
        user_id = session.get(SESSION_USER_KEY)
        if user_id is None:
            return None
        user = await self.store.get(user_id)
        if user is None:
            session.clear()
        return user

    def logout(self, session: Session) -> None:
        user_id = session.get(SESSION_USER_KEY)
        session.clear()
        if user_id is not None:
            logger.info("User id=%s logged out", user_id)
