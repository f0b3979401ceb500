# src/discord_auth/flow.py

import secrets
from typing import Optional

from loguru import logger

from .auth_utils import DiscordOAuthClient, ProviderError
from .outcomes import (
    AlreadyAuthenticated,
    AuthorizationDenied,
    CallbackOutcome,
    ExchangeFailed,
    LoginSucceeded,
    NoActiveSession,
    RefreshFailed,
    RefreshOutcome,
    RefreshSucceeded,
    RestartRequired,
    SessionView,
)
from .session_data import DiscordUser, TokenSet
from .session_store import SessionStore

NONCE_BYTES = 32


class AuthSessionFlow:
    """
    Authorization Code Grant against Discord, one state machine per session:

        Unauthenticated -> begin_login -> PendingCallback(nonce)
            -> handle_callback -> Authenticated(tokens, profile)
            -> refresh -> Authenticated(new tokens)

    Failures leave the session as it was and are reported as outcomes;
    provider errors never escape these methods.
    """

    def __init__(self, client: DiscordOAuthClient, store: SessionStore):
        self.client = client
        self.store = store

    async def begin_login(self, session_id: str) -> str:
        """Issue a fresh state nonce and return the provider URL to redirect to."""
        nonce = secrets.token_urlsafe(NONCE_BYTES)
        async with self.store.locked(session_id):
            session = self.store.get(session_id)
            if session.state_nonce:
                logger.debug(f"FLOW: begin_login replaces an in-flight nonce for session {session_id[:8]}")
            session.state_nonce = nonce
        logger.info(f"FLOW: begin_login issued state nonce for session {session_id[:8]}")
        return self.client.build_auth_url(state=nonce)

    async def handle_callback(
        self,
        session_id: str,
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> CallbackOutcome:
        if error is not None:
            logger.info(f"FLOW: Authorization denied at provider: {error} - {error_description}")
            return AuthorizationDenied(error=error, description=error_description)

        async with self.store.locked(session_id):
            session = self.store.get(session_id)

            # Compare-and-clear: only a matching nonce is consumed.
            if not state or not session.state_nonce or state != session.state_nonce:
                if session.is_authenticated:
                    logger.info(f"FLOW: State mismatch on an authenticated session {session_id[:8]}; ignoring callback")
                    return AlreadyAuthenticated(profile=session.profile)
                logger.warning(f"FLOW: State mismatch for session {session_id[:8]}; login must restart")
                return RestartRequired()
            session.state_nonce = None

            if not code:
                return ExchangeFailed(cause="Callback carried no authorization code.")
            if not self.store.mark_code_redeemed(code):
                logger.warning("FLOW: Authorization code was already redeemed; refusing to exchange it again")
                return ExchangeFailed(cause="Authorization code was already redeemed.")

            try:
                issued_at = self.store.now()
                token_data = await self.client.exchange_code(code)
                tokens = TokenSet.from_token_response(token_data, issued_at)
                user_data = await self.client.fetch_current_user(tokens.auth_header)
                profile = DiscordUser.model_validate(user_data)
            except ProviderError as e:
                logger.error(f"FLOW: Code exchange failed for session {session_id[:8]}: {e}")
                return ExchangeFailed(cause=str(e))
            except (KeyError, ValueError) as e:
                logger.error(f"FLOW: Malformed provider response for session {session_id[:8]}: {e}")
                return ExchangeFailed(cause=f"Malformed provider response: {e}")

            # Tokens and profile are committed together, only once both calls succeeded.
            session.tokens = tokens
            session.profile = profile

        logger.info(f"FLOW: Login succeeded for {profile.display_name}; token expires at {tokens.expires_at.isoformat()}")
        return LoginSucceeded(profile=profile, expires_at=tokens.expires_at)

    async def refresh(self, session_id: str) -> RefreshOutcome:
        async with self.store.locked(session_id):
            session = self.store.get(session_id)
            if session.tokens is None or not session.tokens.refresh_token:
                return NoActiveSession()

            try:
                issued_at = self.store.now()
                token_data = await self.client.refresh_token(session.tokens.refresh_token)
                tokens = TokenSet.from_token_response(token_data, issued_at)
            except ProviderError as e:
                logger.error(f"FLOW: Refresh failed for session {session_id[:8]}: {e}")
                return RefreshFailed(cause=str(e))
            except (KeyError, ValueError) as e:
                logger.error(f"FLOW: Malformed refresh response for session {session_id[:8]}: {e}")
                return RefreshFailed(cause=f"Malformed provider response: {e}")

            # Refresh tokens are single-use; an omitted one leaves nothing to refresh with.
            session.tokens = tokens

        logger.info(f"FLOW: Token refreshed for session {session_id[:8]}; expires at {tokens.expires_at.isoformat()}")
        return RefreshSucceeded(expires_at=tokens.expires_at)

    def describe(self, session_id: str) -> SessionView:
        session = self.store.peek(session_id)
        if session is None:
            return SessionView(authenticated=False, login_pending=False)
        view = SessionView(
            authenticated=session.is_authenticated,
            login_pending=session.state_nonce is not None,
            profile=session.profile,
            display_name=session.profile.display_name if session.profile else None,
        )
        if session.tokens is not None:
            view.token_type = session.tokens.token_type
            view.scope = session.tokens.scope
            view.expires_at = session.tokens.expires_at
            view.expired = session.tokens.expires_at <= self.store.now()
        return view

    async def logout(self, session_id: str) -> None:
        async with self.store.locked(session_id):
            self.store.discard(session_id)
        logger.info(f"FLOW: Session {session_id[:8]} discarded")
