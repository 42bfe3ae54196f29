"""Data models for shared vehicle state."""

from pydrone.models._base import DroneBaseModel, DroneEnum
from pydrone.models.alert import AlertEntry, AlertType
from pydrone.models.control import (
    CAMERA_VIEW_FIELD,
    MOTION_KINDS,
    CameraView,
    ControlIntent,
    Direction,
    IntentKind,
    Rotation,
    ThrottleStep,
)
from pydrone.models.telemetry import (
    CONTROL_FIELDS,
    TELEMETRY_FIELDS,
    BatteryStatus,
    DroneMode,
    FlightMode,
    VehicleState,
    clamp,
    wrap_angle,
)

__all__ = [
    "AlertEntry",
    "AlertType",
    "BatteryStatus",
    "CAMERA_VIEW_FIELD",
    "CONTROL_FIELDS",
    "CameraView",
    "ControlIntent",
    "Direction",
    "DroneBaseModel",
    "DroneEnum",
    "DroneMode",
    "FlightMode",
    "IntentKind",
    "MOTION_KINDS",
    "Rotation",
    "TELEMETRY_FIELDS",
    "ThrottleStep",
    "VehicleState",
    "clamp",
    "wrap_angle",
]
