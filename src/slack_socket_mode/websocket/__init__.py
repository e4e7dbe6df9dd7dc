"""WebSocket infrastructure for Socket Mode.

This package provides the connection lifecycle:
- Connection session (one physical WebSocket) and its state machine
- Reconnection supervisor with exponential backoff
- Dispatch router and handler base classes
"""

from .backoff import BackoffPolicy
from .handlers import AckMode, BaseHandler, FunctionHandler, HandlerRegistration, SocketModeRequest
from .router import DispatchRouter
from .session import ConnectionSession
from .state import SessionState, SessionStateMachine, StateTransition
from .supervisor import ReconnectionSupervisor, SupervisorState

__all__ = [
    "AckMode",
    "BackoffPolicy",
    "BaseHandler",
    "ConnectionSession",
    "DispatchRouter",
    "FunctionHandler",
    "HandlerRegistration",
    "ReconnectionSupervisor",
    "SessionState",
    "SessionStateMachine",
    "SocketModeRequest",
    "StateTransition",
    "SupervisorState",
]
