import json
from dataclasses import replace

import httpx
import pytest

from mailer import SENDGRID_API_URL, Mailer, render_verification_email
from models import User

pytestmark = pytest.mark.anyio


def _user(token="abc123"):
    return User(
        id=1,
        username="mockusername",
        display_name="Mock User",
        email="mockuser@example.com",
        verification_token=token,
    )


def test_email_embeds_the_verification_link():
    body = render_verification_email(_user(), "http://localhost:3000/verify")

    assert "Welcome to NutriSync, mockusername!" in body
    assert body.count('href="http://localhost:3000/verify?token=abc123"') == 2


async def test_posts_to_sendgrid(settings):
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(202)

    mailer = Mailer(settings, transport=httpx.MockTransport(handler))
    assert await mailer.send_verification_email(_user()) is True

    (request,) = captured
    assert str(request.url) == SENDGRID_API_URL
    assert request.headers["Authorization"] == "Bearer SG.test"
    payload = json.loads(request.content)
    assert payload["personalizations"] == [{"to": [{"email": "mockuser@example.com"}]}]
    assert payload["from"] == {"email": "support@nutrisync.com", "name": "NutriSync Support"}
    assert payload["subject"] == "Email Verification"
    assert "token=abc123" in payload["content"][0]["value"]


async def test_provider_errors_are_swallowed(settings):
    mailer = Mailer(
        settings, transport=httpx.MockTransport(lambda request: httpx.Response(500))
    )
    assert await mailer.send_verification_email(_user()) is False


async def test_skipped_when_not_configured(settings):
    calls = []
    mailer = Mailer(
        replace(settings, sendgrid_api_key=None),
        transport=httpx.MockTransport(lambda request: calls.append(request)),
    )
    assert await mailer.send_verification_email(_user()) is False
    assert calls == []


async def test_skipped_without_token(settings):
    mailer = Mailer(settings, transport=httpx.MockTransport(lambda request: httpx.Response(202)))
    assert await mailer.send_verification_email(_user(token=None)) is False
