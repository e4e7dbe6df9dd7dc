"""
Socket Mode Protocol - Payload Models

Pydantic models for the nested payload of each recognized envelope type.
Unknown wire fields are kept (``extra="allow"``) so applications can reach
fields these models do not name.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# EVENTS API
# =============================================================================


class EventsApiPayload(BaseModel):
    """Payload of an ``events_api`` envelope (an Events API callback).

    The inner ``event`` document varies by event subtype and is passed through
    untouched; only its ``type``/``ts``/``channel`` fields get accessors.
    """

    callback_type: str | None = Field(default=None, alias="type", description="Usually 'event_callback'")
    team_id: str | None = None
    api_app_id: str | None = None
    event: dict[str, Any] | None = None
    event_id: str | None = None
    event_time: int | None = None
    authorizations: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @property
    def event_type(self) -> str | None:
        """The inner event's ``type`` (e.g. "app_mention")."""
        return self.event.get("type") if self.event else None

    @property
    def event_ts(self) -> str | None:
        """The inner event's ``ts``."""
        return self.event.get("ts") if self.event else None

    @property
    def event_channel(self) -> str | None:
        """The inner event's ``channel``."""
        return self.event.get("channel") if self.event else None


# =============================================================================
# INTERACTIVE
# =============================================================================


class InteractiveUser(BaseModel):
    """The user who triggered an interaction."""

    id: str
    name: str | None = None
    username: str | None = None
    team_id: str | None = None

    model_config = ConfigDict(extra="allow")


class InteractiveChannel(BaseModel):
    """The channel an interaction happened in."""

    id: str
    name: str | None = None

    model_config = ConfigDict(extra="allow")


class InteractivePayload(BaseModel):
    """Payload of an ``interactive`` envelope (block actions, view submissions, shortcuts)."""

    interaction_type: str = Field(..., alias="type", description="e.g. 'block_actions', 'view_submission'")
    user: InteractiveUser | None = None
    channel: InteractiveChannel | None = None
    team: dict[str, Any] | None = None
    api_app_id: str | None = None
    trigger_id: str | None = None
    response_url: str | None = None
    actions: list[dict[str, Any]] = Field(default_factory=list)
    view: dict[str, Any] | None = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


# =============================================================================
# SLASH COMMANDS
# =============================================================================


class SlashCommandPayload(BaseModel):
    """Payload of a ``slash_commands`` envelope."""

    command: str
    text: str | None = None
    response_url: str | None = None
    trigger_id: str | None = None
    user_id: str
    user_name: str | None = None
    channel_id: str
    channel_name: str | None = None
    team_id: str | None = None
    team_domain: str | None = None
    api_app_id: str | None = None

    model_config = ConfigDict(extra="allow")
