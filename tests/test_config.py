# tests/test_config.py

import pytest
from pydantic import ValidationError

from discord_auth.config import Settings
from discord_auth.session_data import DiscordUser, TokenSet

REQUIRED = dict(
    CLIENT_ID="id",
    CLIENT_SECRET="secret",
    REDIRECT_URI="http://localhost:3000/api/discord/callback",
)


@pytest.mark.parametrize("raw, expected", [
    ("identify", ["identify"]),
    ("identify email guilds", ["identify", "email", "guilds"]),
    ("identify, email", ["identify", "email"]),
])
def test_scope_parsing(raw, expected):
    assert Settings(**REQUIRED, SCOPE=raw).SCOPE == expected


def test_empty_scope_rejected():
    with pytest.raises(ValidationError):
        Settings(**REQUIRED, SCOPE="  ")


def test_derived_endpoints():
    settings = Settings(**REQUIRED, DISCORD_API_BASE_URL="https://discord.com/api/v10")

    assert settings.TOKEN_URI == "https://discord.com/api/v10/oauth2/token"
    assert settings.USER_URI == "https://discord.com/api/v10/users/@me"


def test_defaults():
    settings = Settings(**REQUIRED)

    assert settings.PORT == 3000
    assert settings.TOKEN_URI == "https://discord.com/api/v9/oauth2/token"


@pytest.mark.parametrize("discriminator, expected", [
    ("0001", "alice#0001"),
    ("0", "alice"),
    (None, "alice"),
])
def test_display_name(discriminator, expected):
    user = DiscordUser(id="1", username="alice", discriminator=discriminator)
    assert user.display_name == expected


def test_profile_keeps_unknown_fields():
    user = DiscordUser.model_validate({"id": "1", "username": "alice", "locale": "en-US"})
    assert user.model_dump()["locale"] == "en-US"


def test_token_set_auth_header_and_default_type(clock):
    tokens = TokenSet.from_token_response({"access_token": "T2", "expires_in": 600}, clock())

    assert tokens.token_type == "Bearer"
    assert tokens.auth_header == "Bearer T2"
    assert tokens.refresh_token is None
