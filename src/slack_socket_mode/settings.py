"""Socket Mode client settings configuration."""

import logging
import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .websocket.backoff import BackoffPolicy


class Settings(BaseSettings):
    """Socket Mode settings, read from SLACK_* environment variables or .env."""

    # Credentials & Endpoints
    app_token: str | None = None  # App-level token (xapp-...), SLACK_APP_TOKEN
    api_base_url: str = "https://slack.com/api"
    http_timeout: float = 10.0  # seconds, for apps.connections.open and response_url posts

    # WebSocket Configuration
    handshake_timeout: float = 10.0  # seconds
    ping_interval: float | None = 20.0  # seconds between keepalive pings (None disables)
    ping_timeout: float | None = 20.0  # seconds to wait for a pong (None disables)
    close_timeout: float = 5.0  # seconds for the closing handshake
    idle_timeout: float | None = None  # fail a session silent for this long (None disables)
    drain_timeout: float = 3.0  # seconds acks may still be sent after a server disconnect

    # Reconnection Configuration
    reconnect_initial_delay: float = Field(default=1.0, ge=0)
    reconnect_multiplier: float = Field(default=2.0, ge=1)
    reconnect_max_delay: float = Field(default=120.0, ge=0)
    reconnect_jitter: float = Field(default=1.0, ge=0)
    reconnect_max_attempts: int | None = 10  # consecutive failures before giving up (None: never)
    reconnect_min_stable_seconds: float = 30.0  # connected time that resets the failure count

    # Acknowledgment Configuration
    ack_timeout: float = 2.5  # seconds a WITH_RESULT handler may run; server window is ~3s

    # Debugging Configuration
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SLACK_",  # All env vars prefixed with SLACK_
        case_sensitive=False,
        extra="ignore",
    )

    def backoff_policy(self) -> BackoffPolicy:
        """Build the reconnect backoff policy from these settings."""
        return BackoffPolicy(
            initial_delay=self.reconnect_initial_delay,
            multiplier=self.reconnect_multiplier,
            max_delay=self.reconnect_max_delay,
            jitter=self.reconnect_jitter,
        )


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure application-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party loggers
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
