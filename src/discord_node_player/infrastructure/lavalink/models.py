"""Pydantic models for node wire payloads.

Nodes speak camelCase JSON; these models accept it via aliases and ignore
fields they do not use.
"""

from __future__ import annotations

from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from discord_node_player.domain.shared.types import NonNegativeFloat, NonNegativeInt

CLOSE_CODE_NORMAL: Final[int] = 1000
CLOSE_REASON_DESTROY: Final[str] = "destroy"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class MemoryStats(_WireModel):
    free: NonNegativeInt = 0
    used: NonNegativeInt = 0
    allocated: NonNegativeInt = 0
    reservable: NonNegativeInt = 0


class CpuStats(_WireModel):
    cores: NonNegativeInt = 0
    system_load: NonNegativeFloat = 0.0
    lavalink_load: NonNegativeFloat = 0.0


class FrameStats(_WireModel):
    sent: int = 0
    nulled: int = 0
    deficit: int = 0


class NodeStats(_WireModel):
    """Snapshot of a ``stats`` frame, replaced wholesale on every frame."""

    players: NonNegativeInt = 0
    playing_players: NonNegativeInt = 0
    uptime: NonNegativeInt = 0
    memory: MemoryStats = Field(default_factory=MemoryStats)
    cpu: CpuStats = Field(default_factory=CpuStats)
    frame_stats: FrameStats | None = None

    @property
    def system_load(self) -> float:
        """System CPU load per core; 0 when the core count is unknown."""
        if not self.cpu.cores:
            return 0.0
        return self.cpu.system_load / self.cpu.cores

    @property
    def lavalink_load(self) -> float:
        """Node process CPU load per core; 0 when the core count is unknown."""
        if not self.cpu.cores:
            return 0.0
        return self.cpu.lavalink_load / self.cpu.cores


class NodeResponse(BaseModel):
    """Result of a REST call: HTTP status and decoded JSON (None for 204)."""

    model_config = ConfigDict(frozen=True)

    status: int
    json_body: Any = None
