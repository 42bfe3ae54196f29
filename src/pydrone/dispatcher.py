"""Operator command dispatch.

Each operation computes a delta against the current local state, applies
it optimistically through the :class:`~pydrone.bridge.SyncBridge` (which
also merges it into the store) and appends one alert describing the change.
Manual motion controls are rejected while the drone is in Auto mode: no
state change, no store write, no alert.
"""

from __future__ import annotations

import logging

from pydrone._constants import ATTITUDE_STEP_DEG, THROTTLE_MAX, THROTTLE_MIN, THROTTLE_STEP, YAW_STEP_DEG
from pydrone.alerts import AlertLog
from pydrone.bridge import SyncBridge
from pydrone.keymap import KeyEvent, KeyResult, resolve_key
from pydrone.models.alert import AlertType
from pydrone.models.control import CameraView, ControlIntent, Direction, IntentKind, Rotation, ThrottleStep
from pydrone.models.telemetry import DroneMode, FlightMode, clamp, wrap_angle
from pydrone.state.store import TelemetryModel

_logger = logging.getLogger(__name__)


class CommandDispatcher:
    """One method per discrete operator intent."""

    def __init__(
        self,
        model: TelemetryModel,
        bridge: SyncBridge,
        alerts: AlertLog,
        *,
        reset_throttle: float = 0.0,
    ) -> None:
        self._model = model
        self._bridge = bridge
        self._alerts = alerts
        self._reset_throttle = clamp(reset_throttle, THROTTLE_MIN, THROTTLE_MAX)

    @property
    def reset_throttle(self) -> float:
        return self._reset_throttle

    def accepts(self, intent: ControlIntent) -> bool:
        """Whether *intent* passes the Auto-mode gate."""
        return not (intent.is_motion and self._model.state.drone_mode == DroneMode.AUTO)

    async def dispatch(self, intent: ControlIntent, message: str | None = None) -> ControlIntent | None:
        """Apply *intent* and record *message*. Returns ``None`` when rejected."""
        if not self.accepts(intent):
            _logger.debug("Rejected %s intent: drone is in Auto mode", intent.kind.value)
            return None

        _logger.debug("Dispatching %s changes=%s", intent.kind.value, intent.changes())
        for section, patch in intent.patches().items():
            await self._bridge.submit(section, patch)
        if message is not None:
            await self._alerts.append(AlertType.INFO, message)
        return intent

    # ------------------------------------------------------------------
    # Motion controls
    # ------------------------------------------------------------------

    async def nudge(self, direction: Direction) -> ControlIntent | None:
        state = self._model.state
        if direction in (Direction.FORWARD, Direction.BACKWARD):
            delta = -ATTITUDE_STEP_DEG if direction == Direction.FORWARD else ATTITUDE_STEP_DEG
            intent = ControlIntent(kind=IntentKind.NUDGE, pitch=wrap_angle(state.pitch + delta))
        else:
            delta = -ATTITUDE_STEP_DEG if direction == Direction.LEFT else ATTITUDE_STEP_DEG
            intent = ControlIntent(kind=IntentKind.NUDGE, roll=wrap_angle(state.roll + delta))
        return await self.dispatch(intent, f"Moving {direction.value}")

    async def rotate(self, rotation: Rotation) -> ControlIntent | None:
        delta = YAW_STEP_DEG if rotation == Rotation.CLOCKWISE else -YAW_STEP_DEG
        yaw = wrap_angle(self._model.state.yaw + delta)
        intent = ControlIntent(kind=IntentKind.ROTATE, yaw=yaw)
        return await self.dispatch(intent, f"Rotating {rotation.value} to {yaw:.0f}°")

    async def reset_direction(self) -> ControlIntent | None:
        intent = ControlIntent(kind=IntentKind.RESET_DIRECTION, pitch=0.0, roll=0.0)
        return await self.dispatch(intent, "Direction reset")

    async def reset_yaw(self) -> ControlIntent | None:
        intent = ControlIntent(kind=IntentKind.RESET_YAW, yaw=0.0)
        return await self.dispatch(intent, "Yaw reset")

    async def throttle_step(self, step: ThrottleStep) -> ControlIntent | None:
        delta = THROTTLE_STEP if step == ThrottleStep.UP else -THROTTLE_STEP
        throttle = clamp(self._model.state.throttle_percent + delta, THROTTLE_MIN, THROTTLE_MAX)
        intent = ControlIntent(kind=IntentKind.THROTTLE_STEP, throttle_percent=throttle)
        return await self.dispatch(intent, f"Throttle {step.value}: {throttle:.0f}%")

    async def reset_throttle_level(self) -> ControlIntent | None:
        intent = ControlIntent(kind=IntentKind.RESET_THROTTLE, throttle_percent=self._reset_throttle)
        return await self.dispatch(intent, f"Throttle reset to {self._reset_throttle:.0f}%")

    async def reset_all(self) -> ControlIntent | None:
        """Reset direction and throttle as one delta with one alert."""
        intent = ControlIntent(
            kind=IntentKind.RESET_ALL,
            pitch=0.0,
            roll=0.0,
            throttle_percent=self._reset_throttle,
        )
        return await self.dispatch(intent, "All controls reset")

    # ------------------------------------------------------------------
    # Discrete controls
    # ------------------------------------------------------------------

    async def toggle_arm(self) -> ControlIntent | None:
        disarmed = not self._model.state.disarmed
        intent = ControlIntent(kind=IntentKind.ARM_TOGGLE, disarmed=disarmed)
        return await self.dispatch(intent, "Drone disarmed" if disarmed else "Drone armed")

    async def set_flight_mode(self, mode: FlightMode | str) -> ControlIntent | None:
        flight_mode = FlightMode(mode)
        intent = ControlIntent(kind=IntentKind.FLIGHT_MODE, flight_mode=flight_mode)
        return await self.dispatch(intent, f"Flight mode changed to {flight_mode.value}")

    async def set_drone_mode(self, mode: DroneMode | str) -> ControlIntent | None:
        drone_mode = DroneMode(mode)
        intent = ControlIntent(kind=IntentKind.DRONE_MODE, drone_mode=drone_mode)
        return await self.dispatch(intent, f"Drone mode changed to {drone_mode.value}")

    async def set_camera_view(self, view: CameraView | str) -> ControlIntent | None:
        intent = ControlIntent(kind=IntentKind.CAMERA_VIEW, camera_view=CameraView(view))
        return await self.dispatch(intent)

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------

    async def handle_key(self, event: KeyEvent) -> KeyResult:
        binding = resolve_key(event)
        if binding is None:
            return KeyResult(handled=False)

        if binding.kind == IntentKind.NUDGE and binding.direction is not None:
            result = await self.nudge(binding.direction)
        elif binding.kind == IntentKind.THROTTLE_STEP and binding.step is not None:
            result = await self.throttle_step(binding.step)
        else:
            result = await self.reset_all()
        return KeyResult(handled=result is not None, prevent_default=True)
