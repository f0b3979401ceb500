# tests/conftest.py

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

# Settings are read at import time, so the environment must be ready first.
os.environ.setdefault("CLIENT_ID", "test-client-id")
os.environ.setdefault("CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("REDIRECT_URI", "http://localhost:3000/api/discord/callback")
os.environ.setdefault("SCOPE", "identify email")

from discord_auth.auth_utils import DiscordOAuthClient  # noqa: E402
from discord_auth.config import Settings  # noqa: E402
from discord_auth.flow import AuthSessionFlow  # noqa: E402
from discord_auth.session_store import SessionStore  # noqa: E402

TOKEN_URL = "https://discord.test/api/v9/oauth2/token"
USER_PREFIX = "https://discord.test/api/v9/users/"

ALICE = {"id": "1", "username": "alice", "discriminator": "0001", "avatar": None, "locale": "en-US"}


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeDiscord:
    """Stands in for Discord's token and user endpoints behind an httpx.MockTransport."""

    def __init__(self):
        self.token_responses: List[Any] = []
        self.user_response: Any = dict(ALICE)
        self.token_requests: List[Dict[str, str]] = []
        self.user_requests: List[httpx.Request] = []

    def queue_token(self, response: Any) -> None:
        """Queue a dict (200 JSON), an httpx.Response, or an exception to raise."""
        self.token_responses.append(response)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(TOKEN_URL):
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.token_requests.append(form)
            if not self.token_responses:
                return httpx.Response(400, json={"error": "invalid_request", "error_description": "no response queued"})
            return self._respond(self.token_responses.pop(0), request)
        if url.startswith(USER_PREFIX):
            self.user_requests.append(request)
            return self._respond(self.user_response, request)
        return httpx.Response(404, json={"message": "404: Not Found"})

    @staticmethod
    def _respond(response: Any, request: httpx.Request) -> httpx.Response:
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return httpx.Response(200, json=response)
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def grant_types(self) -> List[str]:
        return [r["grant_type"] for r in self.token_requests]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        CLIENT_ID="test-client-id",
        CLIENT_SECRET="test-client-secret",
        REDIRECT_URI="http://localhost:3000/api/discord/callback",
        SCOPE="identify email",
        OAUTH2_URL="https://discord.test/oauth2/authorize",
        DISCORD_API_BASE_URL="https://discord.test/api/v9/",
        HTTP_TIMEOUT_SECONDS=2.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def discord() -> FakeDiscord:
    return FakeDiscord()


@pytest.fixture
def oauth_client(settings: Settings, discord: FakeDiscord) -> DiscordOAuthClient:
    return DiscordOAuthClient(settings, transport=discord.transport)


@pytest.fixture
def store(clock: FakeClock) -> SessionStore:
    return SessionStore(ttl_seconds=3600, code_reuse_window_seconds=600, clock=clock)


@pytest.fixture
def flow(oauth_client: DiscordOAuthClient, store: SessionStore) -> AuthSessionFlow:
    return AuthSessionFlow(oauth_client, store)


def state_from(url: str) -> Optional[str]:
    query = parse_qs(httpx.URL(url).query.decode())
    values = query.get("state")
    return values[0] if values else None
