"""response_url client.

Interactive payloads and slash commands carry a ``response_url`` that accepts
a JSON message body for a limited time after the interaction.
"""

import logging
from typing import Any

import httpx

from ..errors import ApiError, NetworkError

logger = logging.getLogger(__name__)


class ResponseUrlClient:
    """Posts JSON bodies to response_url endpoints."""

    def __init__(self, http_timeout: float = 10.0) -> None:
        """Initialize the client.

        Args:
            http_timeout: HTTP request timeout in seconds
        """
        self._http_timeout = http_timeout

    async def post(self, response_url: str, body: dict[str, Any]) -> None:
        """Post a message body to a response_url.

        Args:
            response_url: The URL from the interactive or slash command payload
            body: JSON message body (e.g. {"text": "...", "response_type": "ephemeral"})

        Raises:
            ApiError: If Slack rejected the body
            NetworkError: If Slack could not be reached
        """
        try:
            async with httpx.AsyncClient(timeout=self._http_timeout) as client:
                response = await client.post(response_url, json=body)
        except httpx.TimeoutException as e:
            logger.warning("response_url post timed out")
            raise NetworkError("response_url request timed out", e) from e
        except httpx.RequestError as e:
            logger.warning(f"response_url request error: {e}")
            raise NetworkError(f"response_url request failed: {e}", e) from e

        if response.status_code >= 500:
            raise NetworkError(f"response_url failed with status {response.status_code}")
        if response.status_code >= 400:
            logger.warning(f"response_url rejected body: status={response.status_code}")
            raise ApiError(response.text or "response_url_rejected", status_code=response.status_code)

        logger.debug(f"Posted to response_url (status {response.status_code})")
