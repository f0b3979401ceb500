# src/discord_auth/main.py

import uuid
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response as StarletteResponse

from .auth_utils import DiscordOAuthClient
from .config import settings
from .flow import AuthSessionFlow
from .logging_config import configure_logging
from .outcomes import (
    AlreadyAuthenticated,
    AuthorizationDenied,
    ExchangeFailed,
    LoginSucceeded,
    NoActiveSession,
    RefreshFailed,
    RefreshSucceeded,
    RestartRequired,
    SessionView,
)
from .session_store import SessionStore

configure_logging(settings.LOG_LEVEL)

SESSION_COOKIE_NAME = "session_id"


# --- Session cookie ---
# The browser only ever holds an opaque session ID; records live in the SessionStore.
class SessionCookieMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_age: int, secure: bool = False):
        super().__init__(app)
        self.max_age = max_age
        self.secure = secure

    async def dispatch(self, request, call_next):
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        if not _is_valid_session_id(session_id):
            session_id = str(uuid.uuid4())
        request.state.session_id = session_id
        response: StarletteResponse = await call_next(request)
        if not getattr(request.state, "session_ended", False):
            response.set_cookie(
                SESSION_COOKIE_NAME,
                session_id,
                max_age=self.max_age,
                httponly=True,
                secure=self.secure,
                samesite="lax",
            )
        else:
            response.delete_cookie(SESSION_COOKIE_NAME, httponly=True, secure=self.secure, samesite="lax")
        return response


def _is_valid_session_id(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def get_session_id(request: Request) -> str:
    return request.state.session_id


# --- FastAPI App Setup ---
app = FastAPI(
    title="Discord OAuth2 Demo",
    description="Authorization Code Grant against Discord: login redirect, callback and token refresh.",
    version="0.1.0"
)

app.add_middleware(
    SessionCookieMiddleware,
    max_age=settings.SESSION_TTL_SECONDS,
    secure=settings.COOKIE_SECURE,
)

session_store = SessionStore(
    ttl_seconds=settings.SESSION_TTL_SECONDS,
    code_reuse_window_seconds=settings.CODE_REUSE_WINDOW_SECONDS,
)
auth_flow = AuthSessionFlow(DiscordOAuthClient(settings), session_store)


def get_auth_flow() -> AuthSessionFlow:
    return auth_flow


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


# --- Authentication Routes ---
@app.get("/")
async def login(
        session_id: str = Depends(get_session_id),
        flow: AuthSessionFlow = Depends(get_auth_flow),
):
    auth_url = await flow.begin_login(session_id)
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@app.get("/api/discord/callback")
async def discord_callback(
        code: Optional[str] = Query(default=None),
        state: Optional[str] = Query(default=None),
        error: Optional[str] = Query(default=None),
        error_description: Optional[str] = Query(default=None),
        session_id: str = Depends(get_session_id),
        flow: AuthSessionFlow = Depends(get_auth_flow),
):
    outcome = await flow.handle_callback(
        session_id, code=code, state=state, error=error, error_description=error_description
    )

    if isinstance(outcome, LoginSucceeded):
        return {
            "status": outcome.kind,
            "profile": outcome.profile.model_dump(mode="json"),
            "display_name": outcome.profile.display_name,
            "expires_at": outcome.expires_at.isoformat(),
        }
    if isinstance(outcome, AlreadyAuthenticated):
        return {
            "status": outcome.kind,
            "profile": outcome.profile.model_dump(mode="json") if outcome.profile else None,
            "display_name": outcome.profile.display_name if outcome.profile else None,
        }
    if isinstance(outcome, RestartRequired):
        return RedirectResponse(url="/", status_code=status.HTTP_303_SEE_OTHER)
    if isinstance(outcome, AuthorizationDenied):
        raise _error(status.HTTP_403_FORBIDDEN, outcome.kind, "The authorization process was denied.")
    if isinstance(outcome, ExchangeFailed):
        raise _error(status.HTTP_502_BAD_GATEWAY, outcome.kind, outcome.cause)
    raise TypeError(f"Unhandled callback outcome: {outcome!r}")


@app.api_route("/api/discord/refresh", methods=["GET", "POST"])
async def discord_refresh(
        session_id: str = Depends(get_session_id),
        flow: AuthSessionFlow = Depends(get_auth_flow),
):
    outcome = await flow.refresh(session_id)

    if isinstance(outcome, RefreshSucceeded):
        return {"status": outcome.kind, "expires_at": outcome.expires_at.isoformat()}
    if isinstance(outcome, NoActiveSession):
        raise _error(status.HTTP_401_UNAUTHORIZED, outcome.kind, "There is no session to refresh. Log in first.")
    if isinstance(outcome, RefreshFailed):
        raise _error(status.HTTP_502_BAD_GATEWAY, outcome.kind, outcome.cause)
    raise TypeError(f"Unhandled refresh outcome: {outcome!r}")


@app.get("/api/discord/session", response_model=SessionView)
async def discord_session(
        session_id: str = Depends(get_session_id),
        flow: AuthSessionFlow = Depends(get_auth_flow),
):
    return flow.describe(session_id)


@app.get("/logout")
async def logout(
        request: Request,
        session_id: str = Depends(get_session_id),
        flow: AuthSessionFlow = Depends(get_auth_flow),
):
    await flow.logout(session_id)
    request.state.session_ended = True
    return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)


# --- Startup Event ---
@app.on_event("startup")
async def startup_event():
    logger.info("--- Discord OAuth2 Demo Starting Up ---")
    logger.info(f"Client ID: {settings.CLIENT_ID}")
    logger.info(f"Authorization URL: {settings.OAUTH2_URL}")
    logger.info(f"Redirect URI: {settings.REDIRECT_URI}")
    logger.info(f"Scopes: {settings.SCOPE}")
    logger.info(f"Server is listening on {settings.HOST}:{settings.PORT}")


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
