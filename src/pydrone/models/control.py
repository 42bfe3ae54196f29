"""Operator intents and the shared camera-view selector.

A :class:`ControlIntent` is ephemeral: it names only the fields an operator
action changes and is folded into the vehicle state immediately. It is never
stored as its own record.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from pydrone.models._base import DroneEnum
from pydrone.models.telemetry import CONTROL_FIELDS, DroneMode, FlightMode
from pydrone.state.events import StateSection

CAMERA_VIEW_FIELD = "view"
"""Key holding the selector inside the camera-view key group."""

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class CameraView(DroneEnum):
    """Shared camera layout selector (one per vehicle, not per client)."""

    SIDE_BY_SIDE = "side-by-side"
    LIVE = "live"
    ORIENTATION = "orientation"


class Direction(DroneEnum):
    """Directional nudge. Forward/backward move pitch, left/right move roll."""

    FORWARD = "forward"
    BACKWARD = "backward"
    LEFT = "left"
    RIGHT = "right"


class ThrottleStep(DroneEnum):
    UP = "up"
    DOWN = "down"


class Rotation(DroneEnum):
    """Yaw rotation."""

    CLOCKWISE = "clockwise"
    COUNTERCLOCKWISE = "counterclockwise"


class IntentKind(DroneEnum):
    NUDGE = "nudge"
    ROTATE = "rotate"
    RESET_DIRECTION = "reset_direction"
    RESET_YAW = "reset_yaw"
    THROTTLE_STEP = "throttle_step"
    RESET_THROTTLE = "reset_throttle"
    RESET_ALL = "reset_all"
    ARM_TOGGLE = "arm_toggle"
    FLIGHT_MODE = "flight_mode"
    DRONE_MODE = "drone_mode"
    CAMERA_VIEW = "camera_view"


MOTION_KINDS: frozenset[IntentKind] = frozenset(
    {
        IntentKind.NUDGE,
        IntentKind.ROTATE,
        IntentKind.RESET_DIRECTION,
        IntentKind.RESET_YAW,
        IntentKind.THROTTLE_STEP,
        IntentKind.RESET_THROTTLE,
        IntentKind.RESET_ALL,
    }
)
"""Manual motion intents. Rejected while the drone is in Auto mode."""


# ------------------------------------------------------------------
# Intent
# ------------------------------------------------------------------


class ControlIntent(BaseModel):
    """Partial update produced by one operator action."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    kind: IntentKind
    pitch: float | None = None
    roll: float | None = None
    yaw: float | None = None
    throttle_percent: float | None = None
    disarmed: bool | None = None
    flight_mode: FlightMode | None = None
    drone_mode: DroneMode | None = None
    camera_view: CameraView | None = None

    @property
    def is_motion(self) -> bool:
        return self.kind in MOTION_KINDS

    def changes(self) -> dict[str, Any]:
        """camelCase store keys of the fields this intent sets."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True, exclude={"kind"})

    def patches(self) -> dict[StateSection, dict[str, Any]]:
        """Split the changes into one patch per key group."""
        grouped: dict[StateSection, dict[str, Any]] = {}
        for key, value in self.changes().items():
            if key == "cameraView":
                grouped.setdefault(StateSection.CAMERA_VIEW, {})[CAMERA_VIEW_FIELD] = value
            elif key in CONTROL_FIELDS:
                grouped.setdefault(StateSection.CONTROLS, {})[key] = value
            else:
                grouped.setdefault(StateSection.TELEMETRY, {})[key] = value
        return grouped
