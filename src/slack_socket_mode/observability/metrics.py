"""Socket Mode client metrics.

Defines OpenTelemetry metrics for the envelope pipeline:
- Envelopes: frames received, decode failures
- Acknowledgments: acks sent
- Dispatch: handler failures and durations
- Connections: reconnect attempts and sessions opened

Without a configured MeterProvider these instruments are no-ops.
"""

from opentelemetry import metrics

meter = metrics.get_meter(__name__)

# =============================================================================
# ENVELOPE METRICS
# =============================================================================

envelopes_received = meter.create_counter(
    name="socket_mode.envelopes.received",
    description="Total envelopes decoded from the WebSocket",
    unit="1",
)

envelopes_decode_failed = meter.create_counter(
    name="socket_mode.envelopes.decode_failed",
    description="Total frames dropped because they could not be decoded",
    unit="1",
)

envelopes_malformed = meter.create_counter(
    name="socket_mode.envelopes.malformed",
    description="Total envelopes whose payload did not fit their type",
    unit="1",
)

# =============================================================================
# ACKNOWLEDGMENT METRICS
# =============================================================================

acks_sent = meter.create_counter(
    name="socket_mode.acks.sent",
    description="Total acknowledgment frames sent",
    unit="1",
)

acks_failed = meter.create_counter(
    name="socket_mode.acks.failed",
    description="Total acknowledgment frames that could not be sent",
    unit="1",
)

# =============================================================================
# DISPATCH METRICS
# =============================================================================

handler_errors = meter.create_counter(
    name="socket_mode.handlers.errors",
    description="Total handler invocations that raised or timed out",
    unit="1",
)

handler_duration = meter.create_histogram(
    name="socket_mode.handlers.duration",
    description="Time spent in application handlers",
    unit="ms",
)

# =============================================================================
# CONNECTION METRICS
# =============================================================================

sessions_opened = meter.create_counter(
    name="socket_mode.sessions.opened",
    description="Total WebSocket sessions that completed the handshake",
    unit="1",
)

reconnect_attempts = meter.create_counter(
    name="socket_mode.reconnect.attempts",
    description="Total failed connection attempts that triggered a backoff",
    unit="1",
)
