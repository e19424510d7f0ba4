"""Unit tests for domain/shared/types.py: Pydantic Annotated type constraints."""

from __future__ import annotations

import pytest
from pydantic import BaseModel, ValidationError

from discord_node_player.domain.shared.types import (
    VOLUME_MAX,
    DiscordSnowflake,
    DurationMs,
    NonEmptyStr,
    PortInt,
    PositiveFloat,
    VolumeInt,
)


def _model_for(annotation, field_name: str = "v"):
    """Dynamically create a Pydantic model with a single field of the given type."""
    return type("M", (BaseModel,), {"__annotations__": {field_name: annotation}})


class TestDiscordSnowflake:
    M = _model_for(DiscordSnowflake)

    @pytest.mark.parametrize("value", [1, 111111111111111111, 2**64 - 1])
    def test_valid(self, value):
        assert self.M(v=value).v == value

    @pytest.mark.parametrize("value", [0, -1, 2**64])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            self.M(v=value)


class TestVolumeInt:
    M = _model_for(VolumeInt)

    @pytest.mark.parametrize("value", [0, 100, VOLUME_MAX])
    def test_valid(self, value):
        assert self.M(v=value).v == value

    @pytest.mark.parametrize("value", [-1, VOLUME_MAX + 1])
    def test_out_of_range(self, value):
        with pytest.raises(ValidationError):
            self.M(v=value)


class TestPortInt:
    M = _model_for(PortInt)

    def test_valid(self):
        assert self.M(v=2333).v == 2333

    @pytest.mark.parametrize("value", [0, 65536])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            self.M(v=value)


class TestScalarConstraints:
    def test_duration_rejects_negative(self):
        with pytest.raises(ValidationError):
            _model_for(DurationMs)(v=-1)

    def test_positive_float_rejects_zero(self):
        with pytest.raises(ValidationError):
            _model_for(PositiveFloat)(v=0.0)

    def test_non_empty_str(self):
        M = _model_for(NonEmptyStr)

        assert M(v="x").v == "x"
        with pytest.raises(ValidationError):
            M(v="")
