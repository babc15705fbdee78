"""Typed upstream payloads (RawState).

One pydantic model per known upstream schema. Fields the exporter does not
use are ignored so that upstream additions never break collection.

Schemas:
- chatstats: StreamElements kappa v2 chat statistics (``ChatStatsState``)
- flat: A single JSON object of named numeric facts (``FlatState``)
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UpstreamSchema(str, Enum):
    """Known upstream payload schemas."""

    CHATSTATS = "chatstats"
    FLAT = "flat"


class _UpstreamModel(BaseModel):
    """Base for upstream payload models: frozen, unknown fields ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class ChatterStats(_UpstreamModel):
    name: str
    amount: int


class HashtagStats(_UpstreamModel):
    hashtag: str
    amount: int


class CommandStats(_UpstreamModel):
    command: str
    amount: int


class EmoteStats(_UpstreamModel):
    id: str = ""
    emote: str
    amount: int


class TopChannel(_UpstreamModel):
    channel: str
    messages: int


class ChatStats(_UpstreamModel):
    """Response of ``GET /chatstats/{channel}/stats``."""

    channel: str
    total_messages: int = Field(alias="totalMessages")
    chatters: list[ChatterStats] = Field(default_factory=list)
    hashtags: list[HashtagStats] = Field(default_factory=list)
    commands: list[CommandStats] = Field(default_factory=list)
    bttv_emotes: list[EmoteStats] = Field(default_factory=list, alias="bttvEmotes")
    ffz_emotes: list[EmoteStats] = Field(default_factory=list, alias="ffzEmotes")
    twitch_emotes: list[EmoteStats] = Field(default_factory=list, alias="twitchEmotes")


class ChatStatsState(_UpstreamModel):
    """RawState for the ``chatstats`` schema.

    Attributes:
        stats: Statistics for the configured channel
        top_channels: Top channels by message count (empty unless fetched)
    """

    schema_name: Literal["chatstats"] = "chatstats"
    stats: ChatStats
    top_channels: list[TopChannel] = Field(default_factory=list)


class FlatState(_UpstreamModel):
    """RawState for the ``flat`` schema.

    Accepts any JSON object; only numeric values are kept
    (booleans and non-numeric values are dropped).
    """

    schema_name: Literal["flat"] = "flat"
    facts: dict[str, int | float] = Field(default_factory=dict)

    @field_validator("facts", mode="before")
    @classmethod
    def keep_numeric(cls, v: Any) -> dict[str, int | float]:
        """Drop non-numeric facts."""
        if not isinstance(v, dict):
            raise ValueError("Expected a JSON object of named facts")
        return {
            str(k): val
            for k, val in v.items()
            if isinstance(val, (int, float)) and not isinstance(val, bool)
        }


RawState = ChatStatsState | FlatState
