# src/discord_auth/auth_utils.py

from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from loguru import logger

from .config import Settings


class ProviderError(Exception):
    """A call to Discord failed: transport error, timeout, non-2xx status or an error body."""

    def __init__(self, message: str, status_code: Optional[int] = None, error: Optional[str] = None):
        self.status_code = status_code
        self.error = error
        super().__init__(message)


class DiscordOAuthClient:
    """
    Talks to Discord's OAuth2 and user endpoints.
    A transport can be injected for tests (httpx.MockTransport).
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
        )

    # --- Authorization URL ---

    def build_auth_url(self, state: str) -> str:
        """
        Attaches the state nonce to the configured authorization URL.
        Parameters already present on the URL (as in the URL generated by the
        developer portal) are kept; missing ones are filled from settings.
        """
        parts = urlsplit(str(self.settings.OAUTH2_URL))
        params = dict(parse_qsl(parts.query, keep_blank_values=True))
        params.setdefault("client_id", self.settings.CLIENT_ID)
        params.setdefault("redirect_uri", str(self.settings.REDIRECT_URI))
        params.setdefault("response_type", "code")
        params.setdefault("scope", self.settings.scope_string)
        params["state"] = state
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))

    # --- Token endpoint ---

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        data = {
            "client_id": self.settings.CLIENT_ID,
            "client_secret": self.settings.CLIENT_SECRET,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": str(self.settings.REDIRECT_URI),
            "scope": self.settings.scope_string,
        }
        return await self._post_token(data)

    async def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        data = {
            "client_id": self.settings.CLIENT_ID,
            "client_secret": self.settings.CLIENT_SECRET,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._post_token(data)

    async def _post_token(self, data: Dict[str, str]) -> Dict[str, Any]:
        grant_type = data["grant_type"]
        logger.debug(f"AUTH_UTILS: POST {self.settings.TOKEN_URI} grant_type={grant_type}")
        async with self._client() as client:
            try:
                response = await client.post(
                    self.settings.TOKEN_URI,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            except httpx.HTTPError as e:
                raise ProviderError(f"Token request ({grant_type}) failed: {e!r}") from e

        body = _json_body(response)
        if response.is_error or "error" in body:
            error = body.get("error")
            description = body.get("error_description") or response.text
            raise ProviderError(
                f"Token endpoint rejected {grant_type}: {error} - {description}",
                status_code=response.status_code,
                error=error,
            )
        if "access_token" not in body:
            raise ProviderError(
                f"Token endpoint response for {grant_type} has no access_token",
                status_code=response.status_code,
            )
        return body

    # --- User endpoint ---

    async def fetch_current_user(self, auth_header: str) -> Dict[str, Any]:
        async with self._client() as client:
            try:
                response = await client.get(self.settings.USER_URI, headers={"Authorization": auth_header})
            except httpx.HTTPError as e:
                raise ProviderError(f"Profile request failed: {e!r}") from e

        body = _json_body(response)
        if response.is_error:
            raise ProviderError(
                f"Profile request returned {response.status_code}: {body.get('message') or response.text}",
                status_code=response.status_code,
            )
        return body


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        if response.is_error:
            return {}
        raise ProviderError(
            f"Expected JSON from {response.request.url}, got {response.headers.get('content-type')}",
            status_code=response.status_code,
        )
    if not isinstance(body, dict):
        raise ProviderError(f"Expected a JSON object from {response.request.url}", status_code=response.status_code)
    return body
