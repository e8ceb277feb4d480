"""Runtime configuration for the auth_service.

Settings are read once from the environment (optionally populated from a
``.env`` file) by :func:`load_settings` and handed to the application
factory, the database layer and the mailer. ``DATABASE_URL`` and
``SECRET_KEY`` are required and validated eagerly to fail fast on
misconfiguration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

ENV_DATABASE_URL = "DATABASE_URL"
ENV_SECRET_KEY = "SECRET_KEY"

DEFAULT_MAIL_FROM = "NutriSync Support <support@nutrisync.com>"
DEFAULT_SESSION_MAX_AGE = 14 * 24 * 60 * 60


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    database_url: str
    secret_key: str
    db_echo: bool = False
    root_path: str = ""
    session_cookie: str = "nutrisync_session"
    session_max_age: int = DEFAULT_SESSION_MAX_AGE
    session_https_only: bool = False
    sendgrid_api_key: Optional[str] = None
    sendgrid_callback: Optional[str] = None
    mail_from: str = DEFAULT_MAIL_FROM
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_callback_url: Optional[str] = None
    login_redirect: str = "/"
    login_failure_redirect: str = "/login"
    verification_token_ttl_hours: Optional[int] = None

    @property
    def mail_enabled(self) -> bool:
        return bool(self.sendgrid_api_key and self.sendgrid_callback)

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


def load_settings() -> Settings:
    """Build :class:`Settings` from the process environment.

    Raises ``ValueError`` if a required variable is missing or a numeric
    variable cannot be parsed.
    """
    load_dotenv()

    database_url = os.getenv(ENV_DATABASE_URL)
    secret_key = os.getenv(ENV_SECRET_KEY)
    if not database_url or not secret_key:
        raise ValueError(
            f"{ENV_DATABASE_URL} and {ENV_SECRET_KEY} must be set in the environment"
        )

    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        db_echo=_env_bool("DB_ECHO"),
        root_path=os.getenv("ROOT_PATH", ""),
        session_cookie=os.getenv("SESSION_COOKIE", "nutrisync_session"),
        session_max_age=_env_int("SESSION_MAX_AGE", DEFAULT_SESSION_MAX_AGE),
        session_https_only=_env_bool("SESSION_HTTPS_ONLY"),
        sendgrid_api_key=os.getenv("SENDGRID_API_KEY"),
        sendgrid_callback=os.getenv("SENDGRID_CALLBACK"),
        mail_from=os.getenv("MAIL_FROM", DEFAULT_MAIL_FROM),
        google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
        google_callback_url=os.getenv("GOOGLE_CALLBACK_URL"),
        login_redirect=os.getenv("LOGIN_REDIRECT", "/"),
        login_failure_redirect=os.getenv("LOGIN_FAILURE_REDIRECT", "/login"),
        verification_token_ttl_hours=_env_int("VERIFICATION_TOKEN_TTL_HOURS"),
    )
