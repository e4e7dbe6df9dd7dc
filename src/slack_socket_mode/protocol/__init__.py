"""
Socket Mode Protocol - Pydantic Models and Codec

Package Structure:
    - enums.py: Envelope type tags, payload kinds, disconnect reasons
    - envelope.py: Envelope model, decode() and encode_ack()
    - payloads.py: Events API / interactive / slash command payload models
    - classifier.py: Closed payload variants and classify()

The protocol package has no dependency on the WebSocket transport.
"""

from .classifier import (
    ClassifiedPayload,
    Disconnect,
    EventsApi,
    Hello,
    Interactive,
    SlashCommand,
    Unknown,
    classify,
)
from .enums import KNOWN_ENVELOPE_TYPES, EnvelopeTypes, PayloadKind
from .envelope import Envelope, decode, encode_ack
from .payloads import (
    EventsApiPayload,
    InteractiveChannel,
    InteractivePayload,
    InteractiveUser,
    SlashCommandPayload,
)

__all__ = [
    # Enums
    "EnvelopeTypes",
    "KNOWN_ENVELOPE_TYPES",
    "PayloadKind",
    # Envelope codec
    "Envelope",
    "decode",
    "encode_ack",
    # Payloads
    "EventsApiPayload",
    "InteractiveChannel",
    "InteractivePayload",
    "InteractiveUser",
    "SlashCommandPayload",
    # Classification
    "ClassifiedPayload",
    "Disconnect",
    "EventsApi",
    "Hello",
    "Interactive",
    "SlashCommand",
    "Unknown",
    "classify",
]
