"""Tests for the Socket Mode envelope codec.

Tests cover:
- Decoding of every envelope type
- Structural validation (DecodeError)
- Redelivery metadata
- Acknowledgment encoding
"""

import json

import pytest

from slack_socket_mode.errors import DecodeError
from slack_socket_mode.protocol.envelope import Envelope, decode, encode_ack

# ============================================================================
# DECODE TESTS
# ============================================================================


class TestDecode:
    """Test decode() on well-formed frames."""

    def test_decode_hello(self) -> None:
        """Test a hello frame has its id and no payload."""
        raw = '{"type": "hello", "envelope_id": "abc123", "accepts_response_payload": false}'

        envelope = decode(raw)

        assert envelope.envelope_type == "hello"
        assert envelope.envelope_id == "abc123"
        assert envelope.accepts_response_payload is False
        assert envelope.payload is None

    def test_decode_accepts_bytes(self) -> None:
        """Test decode() accepts UTF-8 bytes as well as str."""
        raw = b'{"type": "hello", "envelope_id": "abc123", "accepts_response_payload": false}'

        envelope = decode(raw)

        assert envelope.envelope_id == "abc123"

    def test_decode_events_api(self) -> None:
        """Test an events_api frame keeps its payload untouched."""
        raw = json.dumps(
            {
                "type": "events_api",
                "envelope_id": "evt123",
                "accepts_response_payload": False,
                "payload": {
                    "type": "event_callback",
                    "team_id": "T12345",
                    "api_app_id": "A12345",
                    "event": {"type": "app_mention", "user": "U12345", "text": "<@U67890> hello", "ts": "1234567890.123456", "channel": "C12345"},
                    "event_id": "Ev12345",
                    "event_time": 1234567890,
                },
            }
        )

        envelope = decode(raw)

        assert envelope.envelope_id == "evt123"
        assert envelope.envelope_type == "events_api"
        assert envelope.payload is not None
        assert envelope.payload["team_id"] == "T12345"
        assert envelope.payload["event"]["type"] == "app_mention"

    def test_decode_disconnect(self) -> None:
        """Test a disconnect frame exposes its reason in the payload."""
        raw = '{"type": "disconnect", "envelope_id": "disc123", "accepts_response_payload": false, "payload": {"reason": "link_disabled"}}'

        envelope = decode(raw)

        assert envelope.envelope_type == "disconnect"
        assert envelope.payload == {"reason": "link_disabled"}

    def test_decode_retry_metadata(self) -> None:
        """Test retry_attempt and retry_reason are exposed when present."""
        raw = json.dumps(
            {
                "type": "events_api",
                "envelope_id": "retry123",
                "accepts_response_payload": False,
                "retry_attempt": 2,
                "retry_reason": "timeout",
                "payload": {"type": "event_callback", "team_id": "T12345", "event": {}},
            }
        )

        envelope = decode(raw)

        assert envelope.retry_attempt == 2
        assert envelope.retry_reason == "timeout"

    def test_decode_unknown_type(self) -> None:
        """Test a type outside the known set still decodes."""
        raw = '{"type": "brand_new_thing", "envelope_id": "x1", "accepts_response_payload": true, "payload": {"a": [1, 2]}}'

        envelope = decode(raw)

        assert envelope.envelope_type == "brand_new_thing"
        assert envelope.payload == {"a": [1, 2]}

    def test_decode_ignores_extra_fields(self) -> None:
        """Test unknown top-level fields do not fail decoding."""
        raw = '{"type": "hello", "envelope_id": "h1", "accepts_response_payload": false, "num_connections": 1, "debug_info": {"host": "x"}}'

        envelope = decode(raw)

        assert envelope.envelope_id == "h1"

    def test_envelope_is_immutable(self) -> None:
        """Test decoded envelopes cannot be mutated."""
        envelope = decode('{"type": "hello", "envelope_id": "h1", "accepts_response_payload": false}')

        with pytest.raises(Exception):
            envelope.envelope_id = "other"  # type: ignore[misc]


# ============================================================================
# DECODE ERROR TESTS
# ============================================================================


class TestDecodeErrors:
    """Test decode() rejects structurally invalid frames."""

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"type": "hello", ',
            b"\x80abc",
        ],
    )
    def test_invalid_json(self, raw: str | bytes) -> None:
        """Test malformed JSON raises DecodeError carrying the raw frame."""
        with pytest.raises(DecodeError) as exc_info:
            decode(raw)

        assert exc_info.value.raw == raw

    @pytest.mark.parametrize("raw", ["[]", '"hello"', "42", "null"])
    def test_non_object_top_level(self, raw: str) -> None:
        """Test a JSON value that is not an object raises DecodeError."""
        with pytest.raises(DecodeError, match="JSON object"):
            decode(raw)

    @pytest.mark.parametrize(
        "frame, field",
        [
            ({"envelope_id": "x", "accepts_response_payload": False}, "type"),
            ({"type": "hello", "accepts_response_payload": False}, "envelope_id"),
            ({"type": "hello", "envelope_id": "x"}, "accepts_response_payload"),
        ],
    )
    def test_missing_required_field(self, frame: dict, field: str) -> None:
        """Test a missing required field is named in the error."""
        with pytest.raises(DecodeError) as exc_info:
            decode(json.dumps(frame))

        assert field in str(exc_info.value)

    @pytest.mark.parametrize(
        "frame",
        [
            {"type": 1, "envelope_id": "x", "accepts_response_payload": False},
            {"type": "hello", "envelope_id": 123, "accepts_response_payload": False},
            {"type": "hello", "envelope_id": "x", "accepts_response_payload": "yes"},
        ],
    )
    def test_wrong_required_field_types(self, frame: dict) -> None:
        """Test mistyped required fields are rejected rather than coerced."""
        with pytest.raises(DecodeError):
            decode(json.dumps(frame))

    @pytest.mark.parametrize(
        "retry_fields",
        [
            {"retry_attempt": "2", "retry_reason": "timeout"},
            {"retry_attempt": 2.5, "retry_reason": "timeout"},
            {"retry_attempt": True, "retry_reason": "timeout"},
        ],
    )
    def test_mistyped_retry_attempt_is_absent(self, retry_fields: dict) -> None:
        """Test a non-integer retry_attempt is dropped, not coerced, and the frame still decodes."""
        frame = {"type": "events_api", "envelope_id": "r1", "accepts_response_payload": True, "payload": {}, **retry_fields}

        envelope = decode(json.dumps(frame))

        assert envelope.envelope_id == "r1"
        assert envelope.retry_attempt is None
        assert envelope.retry_reason == "timeout"

    def test_mistyped_retry_reason_is_absent(self) -> None:
        """Test a non-string retry_reason is dropped while retry_attempt is kept."""
        frame = {"type": "events_api", "envelope_id": "r2", "accepts_response_payload": True, "retry_attempt": 1, "retry_reason": 7}

        envelope = decode(json.dumps(frame))

        assert envelope.retry_attempt == 1
        assert envelope.retry_reason is None

    @pytest.mark.parametrize("payload", [["a", 1], "text", 42])
    def test_non_object_payload_is_kept(self, payload: object) -> None:
        """Test a payload that is not an object decodes unchanged; shape checks belong to classification."""
        frame = {"type": "future_type", "envelope_id": "f1", "accepts_response_payload": True, "payload": payload}

        envelope = decode(json.dumps(frame))

        assert envelope.payload == payload

    def test_decode_error_is_not_retryable(self) -> None:
        """Test DecodeError is reported, never retried."""
        with pytest.raises(DecodeError) as exc_info:
            decode("nope")

        assert exc_info.value.is_retryable is False
        assert exc_info.value.to_dict()["type"] == "DecodeError"


# ============================================================================
# ENCODE TESTS
# ============================================================================


class TestEncodeAck:
    """Test encode_ack() output."""

    def test_bare_ack_omits_payload(self) -> None:
        """Test an ack without payload carries only the envelope id."""
        frame = json.loads(encode_ack("evt123"))

        assert frame == {"envelope_id": "evt123"}

    def test_ack_with_payload(self) -> None:
        """Test an ack with payload embeds it unchanged."""
        frame = json.loads(encode_ack("cmd123", {"text": "Sunny in London"}))

        assert frame == {"envelope_id": "cmd123", "payload": {"text": "Sunny in London"}}

    def test_ack_is_utf8_bytes(self) -> None:
        """Test the encoded frame is UTF-8 bytes and keeps non-ASCII text."""
        encoded = encode_ack("id-1", {"text": "héllo ☀"})

        assert isinstance(encoded, bytes)
        assert json.loads(encoded.decode("utf-8"))["payload"]["text"] == "héllo ☀"

    def test_ack_decodes_on_peer_with_same_id(self) -> None:
        """Test a peer decoding the ack recovers the same envelope id."""
        for envelope_id in ["abc123", "e-7f3c-11ee", "1"]:
            assert json.loads(encode_ack(envelope_id))["envelope_id"] == envelope_id

    def test_ack_for_decoded_envelope(self) -> None:
        """Test acknowledging a decoded envelope references its id."""
        envelope = decode('{"type": "interactive", "envelope_id": "int123", "accepts_response_payload": true, "payload": {"type": "block_actions"}}')

        assert json.loads(encode_ack(envelope.envelope_id)) == {"envelope_id": "int123"}


class TestEnvelopeModel:
    """Test the Envelope model directly."""

    def test_construct_by_field_name(self) -> None:
        """Test envelopes can be built in code with field names."""
        envelope = Envelope(envelope_type="hello", envelope_id="h1", accepts_response_payload=False)

        assert envelope.envelope_type == "hello"

    def test_repr_is_compact(self) -> None:
        """Test repr() shows type, id and retry metadata but not the payload."""
        envelope = Envelope(envelope_type="events_api", envelope_id="e1", accepts_response_payload=True, payload={"secret": "x"}, retry_attempt=1)

        text = repr(envelope)

        assert "events_api" in text
        assert "e1" in text
        assert "retry=1" in text
        assert "secret" not in text
