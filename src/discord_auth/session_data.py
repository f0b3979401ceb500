# src/discord_auth/session_data.py

from datetime import datetime, timedelta
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing import Annotated, Optional

DEFAULT_TOKEN_TYPE = "Bearer"

# Seconds; anything outside 0..10 years is treated as a malformed response.
MAX_EXPIRES_IN = 10 * 365 * 24 * 60 * 60
_expires_in = TypeAdapter(Annotated[int, Field(ge=0, le=MAX_EXPIRES_IN)])


class DiscordUser(BaseModel):
    """
    The subset of Discord's user object this service reads.
    Any other fields returned by /users/@me are kept as extras.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    username: str
    discriminator: Optional[str] = None
    global_name: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def display_name(self) -> str:
        # Migrated accounts report discriminator "0"
        if self.discriminator and self.discriminator != "0":
            return f"{self.username}#{self.discriminator}"
        return self.username


class TokenSet(BaseModel):
    """A token pair as issued by the token endpoint, with its absolute expiry."""
    access_token: str
    token_type: str = DEFAULT_TOKEN_TYPE
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    expires_at: datetime

    @classmethod
    def from_token_response(cls, data: dict, issued_at: datetime) -> "TokenSet":
        # Raises pydantic.ValidationError (a ValueError) for a non-integer or out-of-range expires_in
        expires_in = _expires_in.validate_python(data.get("expires_in") or 0)
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type") or DEFAULT_TOKEN_TYPE,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            expires_at=issued_at + timedelta(seconds=expires_in),
        )

    @property
    def auth_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


class SessionData(BaseModel):
    """
    Represents the data stored server-side for a browser session.
    Only the session ID is stored in the browser cookie.
    """
    state_nonce: Optional[str] = None
    tokens: Optional[TokenSet] = None
    profile: Optional[DiscordUser] = None
    last_seen: Optional[datetime] = None

    @property
    def is_authenticated(self) -> bool:
        return self.tokens is not None
