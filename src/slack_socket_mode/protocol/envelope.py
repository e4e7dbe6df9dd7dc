"""
Socket Mode Protocol - Envelope Codec

The envelope is the unit of wire framing: a JSON text frame carrying a type
tag, a unique id, a response-expectation flag, an optional nested payload and
optional redelivery metadata.

Inbound:  {type, envelope_id, accepts_response_payload, payload?, retry_attempt?, retry_reason?}
Outbound: {envelope_id, payload?}
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError, model_validator

from ..errors import DecodeError

# =============================================================================
# ENVELOPE
# =============================================================================


class Envelope(BaseModel):
    """A decoded Socket Mode frame.

    ``retry_attempt`` and ``retry_reason`` are present when the server is
    redelivering an envelope that went unacknowledged; they are exposed for
    the application's idempotency decisions and are not interpreted here.
    A mistyped value for either is treated as absent rather than coerced.

    ``payload`` is kept exactly as sent, object or not; only the classifier
    decides whether it fits the envelope type.
    """

    envelope_type: StrictStr = Field(..., alias="type", description="hello, disconnect, events_api, interactive, slash_commands, ...")
    envelope_id: StrictStr = Field(..., description="Unique id used to correlate the acknowledgment")
    accepts_response_payload: StrictBool = Field(..., description="Whether the server expects an acknowledgment")
    payload: Any = None
    retry_attempt: int | None = None
    retry_reason: str | None = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="before")
    @classmethod
    def drop_mistyped_retry_fields(cls, data: Any) -> Any:
        """Treat a non-integer retry_attempt or non-string retry_reason as absent."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        attempt = data.get("retry_attempt")
        # bool is an int subclass; true/false is not a retry count
        if isinstance(attempt, bool) or not isinstance(attempt, int):
            data["retry_attempt"] = None
        if not isinstance(data.get("retry_reason"), str):
            data["retry_reason"] = None
        return data

    def __repr__(self) -> str:
        """Compact representation for logs."""
        retry = f", retry={self.retry_attempt}" if self.retry_attempt is not None else ""
        return f"Envelope(type={self.envelope_type}, id={self.envelope_id}, ack={self.accepts_response_payload}{retry})"


# =============================================================================
# CODEC
# =============================================================================


def decode(raw: bytes | str) -> Envelope:
    """Decode a raw text frame into an Envelope.

    Args:
        raw: The frame as received (UTF-8 bytes or str)

    Returns:
        The decoded Envelope

    Raises:
        DecodeError: If the frame is not JSON, is not an object, or a required
            top-level field (type, envelope_id, accepts_response_payload) is
            missing or mistyped; optional fields never fail decoding
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"Frame is not valid JSON: {e}", raw=raw, cause=e) from e

    if not isinstance(data, dict):
        raise DecodeError(f"Frame must be a JSON object, got {type(data).__name__}", raw=raw)

    try:
        return Envelope.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
        raise DecodeError(f"Invalid envelope fields: {fields}", raw=raw, cause=e) from e


def encode_ack(envelope_id: str, payload: dict[str, Any] | None = None) -> bytes:
    """Encode an acknowledgment frame for an envelope.

    Args:
        envelope_id: The id of the envelope being acknowledged
        payload: Optional response body (omitted from the frame when None)

    Returns:
        UTF-8 JSON bytes ready to be sent as a text frame
    """
    frame: dict[str, Any] = {"envelope_id": envelope_id}
    if payload is not None:
        frame["payload"] = payload
    return json.dumps(frame, separators=(",", ":")).encode("utf-8")
