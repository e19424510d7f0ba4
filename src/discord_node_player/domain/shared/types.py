"""Reusable Pydantic Annotated types for domain-wide validation.

Every constrained type used across the package is defined here once,
so models can simply annotate their fields::

    from discord_node_player.domain.shared.types import DiscordSnowflake, VolumeInt

    class MyModel(BaseModel):
        guild_id: DiscordSnowflake
        volume: VolumeInt
"""

from __future__ import annotations

from typing import Annotated

from pydantic import Field

# ── Numeric constraints ─────────────────────────────────────────────

DiscordSnowflake = Annotated[int, Field(gt=0, lt=2**64)]
"""Positive integer that fits a Discord snowflake (1 … 2^64-1)."""

NonNegativeInt = Annotated[int, Field(ge=0)]
"""Integer >= 0."""

NonNegativeFloat = Annotated[float, Field(ge=0.0)]
"""Float >= 0.0."""

PositiveFloat = Annotated[float, Field(gt=0.0)]
"""Float > 0.0, used for timeouts and intervals in seconds."""

PortInt = Annotated[int, Field(ge=1, le=65535)]
"""TCP port number."""


# ── String constraints ──────────────────────────────────────────────

NonEmptyStr = Annotated[str, Field(min_length=1)]
"""String with at least one character."""


# ── Playback constraints ────────────────────────────────────────────

VOLUME_MIN: int = 0
VOLUME_MAX: int = 1000
VOLUME_DEFAULT: int = 100

VolumeInt = Annotated[int, Field(ge=VOLUME_MIN, le=VOLUME_MAX)]
"""Node volume: 0 … 1000, 100 is unity."""

DurationMs = Annotated[int, Field(ge=0)]
"""Track length or position in milliseconds."""


# ── Pydantic-compatible ID aliases ──────────────────────────────────

ChannelIdField = DiscordSnowflake
"""Alias: channel ID used as a plain Pydantic field."""
