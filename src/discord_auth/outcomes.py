# src/discord_auth/outcomes.py
"""
Results of the flow operations. Each carries a ``kind`` tag; the HTTP layer
decides how each kind is presented.
"""

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel

from .session_data import DiscordUser


class LoginSucceeded(BaseModel):
    kind: Literal["login_succeeded"] = "login_succeeded"
    profile: DiscordUser
    expires_at: datetime


class AlreadyAuthenticated(BaseModel):
    kind: Literal["already_authenticated"] = "already_authenticated"
    profile: Optional[DiscordUser] = None


class RestartRequired(BaseModel):
    kind: Literal["restart_required"] = "restart_required"


class AuthorizationDenied(BaseModel):
    kind: Literal["authorization_denied"] = "authorization_denied"
    error: str
    description: Optional[str] = None


class ExchangeFailed(BaseModel):
    kind: Literal["exchange_failed"] = "exchange_failed"
    cause: str


class RefreshSucceeded(BaseModel):
    kind: Literal["refresh_succeeded"] = "refresh_succeeded"
    expires_at: datetime


class RefreshFailed(BaseModel):
    kind: Literal["refresh_failed"] = "refresh_failed"
    cause: str


class NoActiveSession(BaseModel):
    kind: Literal["no_active_session"] = "no_active_session"


CallbackOutcome = Union[LoginSucceeded, AlreadyAuthenticated, RestartRequired, AuthorizationDenied, ExchangeFailed]
RefreshOutcome = Union[RefreshSucceeded, RefreshFailed, NoActiveSession]


class SessionView(BaseModel):
    """Non-secret view of a session."""
    authenticated: bool
    login_pending: bool
    profile: Optional[DiscordUser] = None
    display_name: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    expires_at: Optional[datetime] = None
    expired: Optional[bool] = None
