"""apps.connections.open client.

Requests a fresh Socket Mode WebSocket URL with an app-level token. This is
the "open connection" collaborator the reconnection supervisor calls before
every session.

Usage:
    client = AppsConnectionsClient(app_token="xapp-...")
    info = await client.open_connection()
    session = ConnectionSession(info.url)
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from opentelemetry import trace

from ..errors import ApiError, AuthError, NetworkError, RateLimitedError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_API_BASE_URL = "https://slack.com/api"
APP_TOKEN_PREFIX = "xapp-"

# Slack error codes meaning the token itself is unusable
AUTH_ERROR_CODES = frozenset(
    {
        "invalid_auth",
        "not_authed",
        "account_inactive",
        "token_revoked",
        "not_allowed_token_type",
    }
)

# Used when a 429 carries no usable Retry-After header
DEFAULT_RETRY_AFTER = 1.0


@dataclass(frozen=True)
class ConnectionInfo:
    """Result of apps.connections.open.

    Attributes:
        url: The single-use WebSocket URL (wss://...)
        raw: Complete raw API response
    """

    url: str
    raw: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


class AppsConnectionsClient:
    """Calls apps.connections.open over HTTPS.

    Error mapping:
    - missing or non app-level token, auth error codes → AuthError
    - HTTP 429 → RateLimitedError (retry_after from the Retry-After header)
    - HTTP 5xx, timeouts, transport errors → NetworkError
    - any other ``ok: false`` → ApiError
    """

    def __init__(
        self,
        app_token: str | None,
        api_base_url: str = DEFAULT_API_BASE_URL,
        http_timeout: float = 10.0,
    ) -> None:
        """Initialize the client.

        Args:
            app_token: App-level token (xapp-...)
            api_base_url: Slack Web API base URL
            http_timeout: HTTP request timeout in seconds
        """
        self._app_token = app_token
        self._api_base_url = api_base_url.rstrip("/")
        self._http_timeout = http_timeout

    @property
    def endpoint(self) -> str:
        """Full apps.connections.open URL."""
        return f"{self._api_base_url}/apps.connections.open"

    async def open_connection(self) -> ConnectionInfo:
        """Request a new WebSocket URL.

        Returns:
            ConnectionInfo with the WebSocket URL

        Raises:
            AuthError: If no usable app-level token is configured or it was rejected
            RateLimitedError: If Slack asked us to slow down
            ApiError: If Slack rejected the request for another reason
            NetworkError: If Slack could not be reached or failed server-side
        """
        if not self._app_token:
            raise AuthError("No app-level token configured (expected xapp-...)")
        if not self._app_token.startswith(APP_TOKEN_PREFIX):
            raise AuthError("Socket Mode requires an app-level token (xapp-...)")

        with tracer.start_as_current_span("apps_connections_open") as span:
            span.set_attribute("slack.endpoint", self.endpoint)

            try:
                async with httpx.AsyncClient(timeout=self._http_timeout) as client:
                    response = await client.post(
                        self.endpoint,
                        headers={
                            "Authorization": f"Bearer {self._app_token}",
                            "Content-Type": "application/x-www-form-urlencoded",
                        },
                    )
            except httpx.TimeoutException as e:
                logger.warning(f"apps.connections.open timed out after {self._http_timeout}s")
                raise NetworkError("apps.connections.open request timed out", e) from e
            except httpx.RequestError as e:
                logger.warning(f"apps.connections.open request error: {e}")
                raise NetworkError(f"apps.connections.open request failed: {e}", e) from e

            span.set_attribute("http.status_code", response.status_code)

            if response.status_code == 429:
                retry_after = _parse_retry_after(response.headers.get("Retry-After"))
                logger.warning(f"apps.connections.open rate limited, retry after {retry_after}s")
                raise RateLimitedError(retry_after)

            if response.status_code >= 500:
                logger.warning(f"apps.connections.open failed: status={response.status_code}")
                raise NetworkError(f"apps.connections.open failed with status {response.status_code}")

            try:
                data = response.json()
            except ValueError as e:
                raise ApiError("invalid_response", f"apps.connections.open returned non-JSON body (status {response.status_code})", response.status_code) from e

            if not isinstance(data, dict):
                raise ApiError("invalid_response", "apps.connections.open returned a non-object body", response.status_code)

            if not data.get("ok"):
                code = str(data.get("error") or "unknown_error")
                span.set_attribute("slack.error", code)
                if code in AUTH_ERROR_CODES:
                    logger.error(f"apps.connections.open rejected the app token: {code}")
                    raise AuthError(f"App-level token rejected: {code}")
                logger.warning(f"apps.connections.open returned error: {code}")
                raise ApiError(code, status_code=response.status_code)

            url = data.get("url")
            if not isinstance(url, str) or not url:
                raise ApiError("invalid_response", "apps.connections.open response has no url", response.status_code)

            logger.debug("apps.connections.open returned a WebSocket URL")
            return ConnectionInfo(url=url, raw=data)


def _parse_retry_after(value: str | None) -> float:
    """Parse a Retry-After header given in seconds."""
    if value is None:
        return DEFAULT_RETRY_AFTER
    try:
        return max(float(value), 0.0)
    except ValueError:
        return DEFAULT_RETRY_AFTER
