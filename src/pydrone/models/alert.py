"""Alert log entries."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field, field_validator

from pydrone.models._base import DroneBaseModel, DroneEnum


class AlertType(DroneEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AlertEntry(DroneBaseModel):
    """One timestamped notification.

    ``id`` is a monotonic token (epoch milliseconds, bumped past the newest
    known entry) so insertion order survives a round trip through the store.
    """

    id: int
    type: AlertType = AlertType.INFO
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    origin: str | None = None
    """Client id of the writer, when known."""

    @field_validator("timestamp")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
