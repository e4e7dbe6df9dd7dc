"""Slack Socket Mode client.

Package Structure:
    - protocol/: envelope codec and payload classifier (no transport dependency)
    - websocket/: connection session, reconnection supervisor, dispatch router
    - infrastructure/: apps.connections.open and response_url HTTP clients
    - client.py: SocketModeClient facade
"""

from .client import SocketModeClient
from .error_channel import ErrorChannel
from .errors import (
    ApiError,
    AuthError,
    DecodeError,
    HandlerError,
    MalformedPayload,
    NetworkError,
    RateLimitedError,
    ReconnectExhausted,
    SendError,
    SessionConnectError,
    SessionEnded,
    SocketModeError,
)
from .infrastructure import AppsConnectionsClient, ConnectionInfo, ResponseUrlClient
from .protocol import (
    ClassifiedPayload,
    Disconnect,
    Envelope,
    EventsApi,
    EventsApiPayload,
    Hello,
    Interactive,
    InteractivePayload,
    PayloadKind,
    SlashCommand,
    SlashCommandPayload,
    Unknown,
    classify,
    decode,
    encode_ack,
)
from .settings import Settings, configure_logging
from .websocket import (
    AckMode,
    BackoffPolicy,
    BaseHandler,
    ConnectionSession,
    DispatchRouter,
    ReconnectionSupervisor,
    SessionState,
    SocketModeRequest,
    SupervisorState,
)

__version__ = "1.0.0"

__all__ = [
    # Client
    "SocketModeClient",
    "Settings",
    "configure_logging",
    # Protocol
    "Envelope",
    "decode",
    "encode_ack",
    "classify",
    "ClassifiedPayload",
    "Hello",
    "Disconnect",
    "EventsApi",
    "Interactive",
    "SlashCommand",
    "Unknown",
    "PayloadKind",
    "EventsApiPayload",
    "InteractivePayload",
    "SlashCommandPayload",
    # Connection
    "ConnectionSession",
    "SessionState",
    "ReconnectionSupervisor",
    "SupervisorState",
    "BackoffPolicy",
    "DispatchRouter",
    "AckMode",
    "BaseHandler",
    "SocketModeRequest",
    "ErrorChannel",
    # HTTP collaborators
    "AppsConnectionsClient",
    "ConnectionInfo",
    "ResponseUrlClient",
    # Errors
    "SocketModeError",
    "DecodeError",
    "MalformedPayload",
    "SendError",
    "NetworkError",
    "SessionConnectError",
    "SessionEnded",
    "ApiError",
    "RateLimitedError",
    "AuthError",
    "HandlerError",
    "ReconnectExhausted",
]
