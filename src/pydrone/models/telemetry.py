"""Vehicle state model.

The store splits a vehicle into independently written key groups.
:data:`TELEMETRY_FIELDS` and :data:`CONTROL_FIELDS` list the camelCase keys
each group owns; both are projections of one :class:`VehicleState`.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError, field_validator

from pydrone._constants import (
    ANGLE_MODULUS,
    BATTERY_FAIR_ABOVE,
    BATTERY_GOOD_ABOVE,
    BATTERY_LEVEL_MAX,
    BATTERY_LEVEL_MIN,
    BATTERY_VOLTS_FLOOR,
    THROTTLE_MAX,
    THROTTLE_MIN,
)
from pydrone.models._base import DroneBaseModel, DroneEnum, is_sentinel

_logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class FlightMode(DroneEnum):
    """Autopilot behavior profile."""

    LAND = "Land"
    STABILIZE = "Stabilize"
    ALT_HOLD = "AltHold"
    FLOW_HOLD = "FlowHold"
    LOITER = "Loiter"
    RTL = "RTL"
    AUTO = "Auto"


class DroneMode(DroneEnum):
    """Who may issue motion commands.

    ``MANUAL`` accepts operator input; ``AUTO`` reserves motion for the
    autonomous controller.
    """

    AUTO = "Auto"
    MANUAL = "Manual"


class BatteryStatus(DroneEnum):
    """Display band for the battery level."""

    GOOD = "good"
    FAIR = "fair"
    LOW = "low"


# ------------------------------------------------------------------
# Normalization
# ------------------------------------------------------------------


def wrap_angle(value: float) -> float:
    """Wrap *value* degrees into ``[0, 360)``."""
    wrapped = math.fmod(value, ANGLE_MODULUS)
    if wrapped < 0:
        wrapped += ANGLE_MODULUS
    # Tiny negatives round up to exactly 360.0 after the addition.
    return 0.0 if wrapped >= ANGLE_MODULUS else wrapped


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ------------------------------------------------------------------
# State
# ------------------------------------------------------------------


class VehicleState(DroneBaseModel):
    """Last known state of the vehicle.

    Defaults are the values a freshly seeded store starts with. Every
    construction normalizes angles, throttle and battery, so no instance can
    hold an out-of-range value.
    """

    # Position
    x: float = 24.8
    y: float = 14.6
    altitude: float = 197.0
    velocity_x: float = 20.4
    velocity_y: float = 0.0

    # Attitude (degrees)
    pitch: float = 10.0
    roll: float = 0.0
    yaw: float = 330.0
    heading: float = 330.0

    # Propulsion / power
    throttle_percent: float = 45.0
    battery_level: float = 84.0
    battery_volts: float = 18.89

    # Flags
    disarmed: bool = True
    connected: bool = False
    flight_mode: FlightMode = FlightMode.STABILIZE
    drone_mode: DroneMode = DroneMode.MANUAL

    # Informational
    optical_x: float = 0.0
    optical_y: float = 0.0
    home_distance: float = 125.0
    gps_signal: int = 8
    temperature: float = 28.0

    @field_validator("pitch", "roll", "yaw", "heading")
    @classmethod
    def _wrap_angles(cls, value: float) -> float:
        return wrap_angle(value)

    @field_validator("throttle_percent")
    @classmethod
    def _clamp_throttle(cls, value: float) -> float:
        return clamp(value, THROTTLE_MIN, THROTTLE_MAX)

    @field_validator("battery_level")
    @classmethod
    def _clamp_battery_level(cls, value: float) -> float:
        return clamp(value, BATTERY_LEVEL_MIN, BATTERY_LEVEL_MAX)

    @field_validator("battery_volts")
    @classmethod
    def _floor_battery_volts(cls, value: float) -> float:
        return max(BATTERY_VOLTS_FLOOR, value)

    @property
    def armed(self) -> bool:
        return not self.disarmed

    @property
    def speed(self) -> float:
        """Ground speed in m/s."""
        return math.hypot(self.velocity_x, self.velocity_y)

    @property
    def battery_status(self) -> BatteryStatus:
        if self.battery_level > BATTERY_GOOD_ABOVE:
            return BatteryStatus.GOOD
        if self.battery_level > BATTERY_FAIR_ABOVE:
            return BatteryStatus.FAIR
        return BatteryStatus.LOW

    def apply_partial(self, partial: Mapping[str, Any]) -> VehicleState:
        """Overlay the fields present in *partial* and re-normalize.

        Keys may be camelCase store keys or snake_case field names. Unknown
        keys are ignored. Missing, sentinel or malformed values keep the
        current value.
        """
        updates: dict[str, Any] = {}
        for key, value in partial.items():
            name = field_name(key)
            if name is None or is_sentinel(value):
                continue
            updates[name] = value
        if not updates:
            return self

        previous = self.model_dump()
        merged = {**previous, **updates}
        try:
            return type(self).model_validate(merged)
        except ValidationError as exc:
            rejected = {field_name(str(err["loc"][0])) for err in exc.errors() if err.get("loc")}
            _logger.debug("Ignoring malformed vehicle fields: %s", sorted(name for name in rejected if name))
            for name in rejected:
                if name is not None:
                    merged[name] = previous[name]
            return type(self).model_validate(merged)

    def group_payload(self, keys: frozenset[str]) -> dict[str, Any]:
        """Return the camelCase store payload restricted to *keys*."""
        dumped = self.to_store()
        return {key: value for key, value in dumped.items() if key in keys}


_ALIAS_TO_NAME: dict[str, str] = {}
for _name, _field in VehicleState.model_fields.items():
    _ALIAS_TO_NAME[_name] = _name
    if _field.alias:
        _ALIAS_TO_NAME[_field.alias] = _name


def field_name(key: str) -> str | None:
    """Map a camelCase store key (or a field name) to the model field name."""
    return _ALIAS_TO_NAME.get(key)


CONTROL_FIELDS: frozenset[str] = frozenset({"disarmed", "flightMode", "droneMode"})
"""Store keys owned by the discrete-controls key group."""

TELEMETRY_FIELDS: frozenset[str] = frozenset(
    field.alias or name for name, field in VehicleState.model_fields.items()
) - CONTROL_FIELDS
"""Store keys owned by the vehicle-telemetry key group."""
