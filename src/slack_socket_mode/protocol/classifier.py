"""
Socket Mode Protocol - Payload Classifier

Maps an envelope's type tag onto a closed set of payload variants. Every
envelope classifies into exactly one variant; unrecognized tags land in
Unknown with the raw payload untouched.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import ValidationError

from ..errors import MalformedPayload
from .enums import DISCONNECT_UNKNOWN, EnvelopeTypes, PayloadKind
from .envelope import Envelope
from .payloads import EventsApiPayload, InteractivePayload, SlashCommandPayload

log = logging.getLogger(__name__)


# =============================================================================
# VARIANTS
# =============================================================================


@dataclass(frozen=True)
class Hello:
    """Handshake completion signal from the server."""

    kind = PayloadKind.HELLO


@dataclass(frozen=True)
class Disconnect:
    """Server-initiated link retirement notice."""

    reason: str = DISCONNECT_UNKNOWN

    kind = PayloadKind.DISCONNECT


@dataclass(frozen=True)
class EventsApi:
    """An Events API callback."""

    payload: EventsApiPayload

    kind = PayloadKind.EVENTS_API


@dataclass(frozen=True)
class Interactive:
    """A block action, view submission or other interaction."""

    payload: InteractivePayload

    kind = PayloadKind.INTERACTIVE


@dataclass(frozen=True)
class SlashCommand:
    """A slash command invocation."""

    payload: SlashCommandPayload

    kind = PayloadKind.SLASH_COMMAND


@dataclass(frozen=True)
class Unknown:
    """An envelope type this client does not recognize; payload passed through as-is."""

    envelope_type: str
    raw: Any = field(default=None, hash=False)

    kind = PayloadKind.UNKNOWN


ClassifiedPayload = Union[Hello, Disconnect, EventsApi, Interactive, SlashCommand, Unknown]


# =============================================================================
# CLASSIFICATION
# =============================================================================


def classify(envelope: Envelope) -> ClassifiedPayload:
    """Classify an envelope by its type tag and decode its payload.

    Args:
        envelope: The decoded envelope

    Returns:
        The matching payload variant

    Raises:
        MalformedPayload: If a recognized envelope type carries a payload that
            does not fit its shape (e.g. a slash command without ``command``)
    """
    envelope_type = envelope.envelope_type
    payload = envelope.payload

    if envelope_type == EnvelopeTypes.HELLO:
        return Hello()

    if envelope_type == EnvelopeTypes.DISCONNECT:
        reason = payload.get("reason") if isinstance(payload, dict) else None
        return Disconnect(reason=reason if isinstance(reason, str) and reason else DISCONNECT_UNKNOWN)

    if envelope_type == EnvelopeTypes.EVENTS_API:
        return EventsApi(payload=_validate(EventsApiPayload, envelope))

    if envelope_type == EnvelopeTypes.INTERACTIVE:
        return Interactive(payload=_validate(InteractivePayload, envelope))

    if envelope_type == EnvelopeTypes.SLASH_COMMANDS:
        return SlashCommand(payload=_validate(SlashCommandPayload, envelope))

    log.debug(f"Unrecognized envelope type passed through: {envelope_type}")
    return Unknown(envelope_type=envelope_type, raw=payload)


def _validate(model: type, envelope: Envelope) -> Any:
    """Validate an envelope's payload against a payload model."""
    try:
        return model.model_validate({} if envelope.payload is None else envelope.payload)
    except ValidationError as e:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
        raise MalformedPayload(f"Invalid {envelope.envelope_type} payload: {fields}", envelope=envelope, cause=e) from e
