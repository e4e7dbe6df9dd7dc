"""Socket Mode error taxonomy.

Every error raised by this package derives from SocketModeError and carries an
``is_retryable`` flag that the reconnection supervisor uses to decide between
backing off and giving up.

Propagation:
- DecodeError / MalformedPayload / HandlerError: reported to the error channel,
  the connection stays open
- SendError / NetworkError / ApiError: the session is torn down and the
  supervisor reconnects under backoff
- AuthError / ReconnectExhausted: fatal, the supervisor stops
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .protocol.envelope import Envelope


class SocketModeError(Exception):
    """Base exception for all Socket Mode errors."""

    is_retryable: bool = False

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "is_retryable": self.is_retryable,
            "cause": repr(self.cause) if self.cause else None,
        }


# =============================================================================
# PROTOCOL ERRORS
# =============================================================================


class DecodeError(SocketModeError):
    """A raw frame is not a structurally valid envelope."""

    def __init__(self, message: str, raw: bytes | str | None = None, cause: Exception | None = None):
        super().__init__(message, cause)
        self.raw = raw


class MalformedPayload(SocketModeError):
    """An envelope of a recognized type carries a payload of the wrong shape."""

    def __init__(self, message: str, envelope: "Envelope", cause: Exception | None = None):
        super().__init__(message, cause)
        self.envelope = envelope

    def __str__(self) -> str:
        return f"{self.message} (envelope: {self.envelope.envelope_id}, type: {self.envelope.envelope_type})"


# =============================================================================
# TRANSPORT ERRORS
# =============================================================================


class SendError(SocketModeError):
    """An acknowledgment could not be written to the transport."""

    is_retryable = True


class NetworkError(SocketModeError):
    """Transport-level failure reaching the Slack API or the WebSocket endpoint."""

    is_retryable = True


class SessionConnectError(NetworkError):
    """The WebSocket handshake failed or timed out."""


class SessionEnded(SocketModeError):
    """The session left the OPEN state; no further envelopes will arrive.

    Attributes:
        reason: Why the session ended (e.g. "refresh_requested", "stopped")
    """

    def __init__(self, reason: str = "closed"):
        super().__init__(f"Session ended: {reason}")
        self.reason = reason


# =============================================================================
# API ERRORS
# =============================================================================


class ApiError(SocketModeError):
    """The Slack API rejected the request (``ok: false``).

    Attributes:
        code: The Slack error code (e.g. "internal_error")
        status_code: HTTP status code, when the rejection came with one
    """

    is_retryable = True

    def __init__(self, code: str, message: str | None = None, status_code: int | None = None):
        super().__init__(message or code)
        self.code = code
        self.status_code = status_code

    def __str__(self) -> str:
        return f"API error {self.code}: {self.message}"


class RateLimitedError(ApiError):
    """The Slack API asked us to slow down (HTTP 429).

    Attributes:
        retry_after: Seconds to wait before retrying, from the Retry-After header
    """

    def __init__(self, retry_after: float, status_code: int = 429):
        super().__init__("ratelimited", f"Rate limited, retry after {retry_after} seconds", status_code)
        self.retry_after = retry_after


class AuthError(SocketModeError):
    """No usable app-level credential is configured. Never retried."""

    is_retryable = False


# =============================================================================
# APPLICATION ERRORS
# =============================================================================


class HandlerError(SocketModeError):
    """An application handler raised while processing an envelope.

    Attributes:
        envelope_id: The envelope that was being handled
        kind: The payload kind the handler was registered for
    """

    def __init__(self, envelope_id: str, kind: str, cause: Exception):
        super().__init__(f"Handler for {kind} failed on envelope {envelope_id}: {cause!r}", cause)
        self.envelope_id = envelope_id
        self.kind = kind


class ReconnectExhausted(SocketModeError):
    """The supervisor hit its retry ceiling without re-establishing a session.

    Attributes:
        attempts: How many consecutive attempts failed
        last_error: The error from the final attempt
    """

    def __init__(self, attempts: int, last_error: Exception | None = None):
        super().__init__(f"Gave up reconnecting after {attempts} attempts", last_error)
        self.attempts = attempts
        self.last_error = last_error
