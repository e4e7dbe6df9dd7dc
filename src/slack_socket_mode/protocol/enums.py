"""
Socket Mode Protocol - Enums and Constants

Envelope type tags, payload kinds and disconnect reasons.
"""

from enum import Enum

# =============================================================================
# ENVELOPE TYPES
# =============================================================================


class EnvelopeTypes:
    """Envelope ``type`` tags known to this client.

    Any other string is still a valid envelope type and classifies as Unknown.
    """

    HELLO = "hello"
    DISCONNECT = "disconnect"
    EVENTS_API = "events_api"
    INTERACTIVE = "interactive"
    SLASH_COMMANDS = "slash_commands"


KNOWN_ENVELOPE_TYPES: frozenset[str] = frozenset(
    {
        EnvelopeTypes.HELLO,
        EnvelopeTypes.DISCONNECT,
        EnvelopeTypes.EVENTS_API,
        EnvelopeTypes.INTERACTIVE,
        EnvelopeTypes.SLASH_COMMANDS,
    }
)


class PayloadKind(str, Enum):
    """Classified payload variants; one handler registration point per kind."""

    HELLO = "hello"
    DISCONNECT = "disconnect"
    EVENTS_API = "events_api"
    INTERACTIVE = "interactive"
    SLASH_COMMAND = "slash_command"
    UNKNOWN = "unknown"


# =============================================================================
# DISCONNECT REASONS
# =============================================================================

# A "warning" disconnect announces an upcoming refresh; the link stays usable.
DISCONNECT_WARNING = "warning"
DISCONNECT_UNKNOWN = "unknown"
