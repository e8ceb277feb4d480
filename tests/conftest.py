import asyncio
import os
from pathlib import Path
from typing import List

import pytest
from fastapi.testclient import TestClient

# app.py builds a module-level application at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-import.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from app import create_app  # noqa: E402
from config import Settings  # noqa: E402
from database import create_engine, create_sessionmaker, init_db  # noqa: E402
from mailer import Mailer  # noqa: E402
from store import UserStore  # noqa: E402


class RecordingMailer(Mailer):
    """Mailer that records recipients instead of calling SendGrid."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.sent: List[dict] = []

    async def send_verification_email(self, user) -> bool:
        self.sent.append({"email": user.email, "token": user.verification_token})
        return True


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
        secret_key="test-secret-key",
        sendgrid_api_key="SG.test",
        sendgrid_callback="http://localhost:3000/verify",
    )


@pytest.fixture()
def mailer(settings: Settings) -> RecordingMailer:
    return RecordingMailer(settings)


@pytest.fixture()
def app(settings: Settings, mailer: RecordingMailer):
    return create_app(settings, mailer=mailer)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db(settings: Settings):
    """Run store operations against the test database from sync tests.

    ``db(lambda store: store.find_by_email(...))`` opens a fresh engine and
    session, awaits the callable and returns its result.
    """

    def run(operation):
        async def _run():
            engine = create_engine(settings)
            try:
                await init_db(engine)
                async with create_sessionmaker(engine)() as session:
                    return await operation(UserStore(session))
            finally:
                await engine.dispose()

        return asyncio.run(_run())

    return run


@pytest.fixture()
async def session_factory(settings: Settings):
    engine = create_engine(settings)
    await init_db(engine)
    yield create_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture()
async def store(session_factory):
    async with session_factory() as session:
        yield UserStore(session)
