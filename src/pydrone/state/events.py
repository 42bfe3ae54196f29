"""Normalized state updates.

Remote store notifications and local operator/simulator changes are both
converted into these events. Only the state layer is allowed to merge them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StateSection(StrEnum):
    """Independently written key groups of the shared vehicle."""

    TELEMETRY = "telemetry"
    CONTROLS = "controls"
    CAMERA_VIEW = "cameraView"


class UpdateSource(StrEnum):
    REMOTE = "remote"
    OPTIMISTIC = "optimistic"
    LOCAL = "local"
    """A local change kept as confirmed state because the store write failed."""


class StateUpdate(BaseModel):
    """A normalized patch for one key group."""

    model_config = ConfigDict(frozen=True)

    section: StateSection
    source: UpdateSource
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict, description="camelCase store patch")

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
