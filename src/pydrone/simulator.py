"""Discrete-time flight dynamics for running without a real vehicle.

Each tick derives the climb rate from throttle and adds bounded uniform
drift to every continuous channel. Battery level and voltage only ever go
down and stop at their floors, whatever the noise source returns.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import random
from typing import Any, Protocol

from pydrone._constants import BATTERY_LEVEL_MIN, BATTERY_VOLTS_FLOOR, THROTTLE_MAX, THROTTLE_MIN
from pydrone.bridge import SyncBridge
from pydrone.models.telemetry import VehicleState, clamp, wrap_angle
from pydrone.state.events import StateSection
from pydrone.state.store import TelemetryModel

_logger = logging.getLogger(__name__)


class NoiseSource(Protocol):
    """Anything with ``uniform(a, b)``; :class:`random.Random` qualifies."""

    def uniform(self, a: float, b: float) -> float: ...


@dataclasses.dataclass(frozen=True)
class DriftProfile:
    """Half-widths of the per-tick uniform drift, and battery drain per tick."""

    altitude: float = 0.2
    velocity: float = 0.3
    position: float = 0.1
    attitude: float = 0.5
    heading: float = 0.5
    throttle: float = 1.0
    optical: float = 0.05
    battery_level_step: float = 0.01
    battery_volts_step: float = 0.001


def altitude_rate(throttle_percent: float) -> float:
    """Climb rate: level at 50 %, one unit per second per 25 points off."""
    return (throttle_percent - 50.0) / 25.0


def advance(
    state: VehicleState,
    dt: float,
    noise: NoiseSource,
    profile: DriftProfile | None = None,
) -> dict[str, Any]:
    """Compute the telemetry patch for one tick of length *dt* seconds."""
    profile = profile or DriftProfile()

    def jitter(span: float) -> float:
        return noise.uniform(-span, span)

    battery_level = max(BATTERY_LEVEL_MIN, state.battery_level - profile.battery_level_step)
    battery_volts = max(BATTERY_VOLTS_FLOOR, state.battery_volts - profile.battery_volts_step)

    return {
        "altitude": state.altitude + altitude_rate(state.throttle_percent) * dt + jitter(profile.altitude),
        "velocityX": state.velocity_x + jitter(profile.velocity),
        "velocityY": state.velocity_y + jitter(profile.velocity),
        "x": state.x + jitter(profile.position),
        "y": state.y + jitter(profile.position),
        "pitch": wrap_angle(state.pitch + jitter(profile.attitude)),
        "roll": wrap_angle(state.roll + jitter(profile.attitude)),
        "yaw": wrap_angle(state.yaw + jitter(profile.heading)),
        "heading": wrap_angle(state.heading + jitter(profile.heading)),
        "throttlePercent": clamp(state.throttle_percent + jitter(profile.throttle), THROTTLE_MIN, THROTTLE_MAX),
        "opticalX": state.optical_x + jitter(profile.optical),
        "opticalY": state.optical_y + jitter(profile.optical),
        # min() keeps the drain monotonic even if the state was already below the floor.
        "batteryLevel": min(state.battery_level, battery_level),
        "batteryVolts": min(state.battery_volts, battery_volts),
    }


class DynamicsSimulator:
    """Advances the shared vehicle on a fixed cadence while armed and connected."""

    def __init__(
        self,
        model: TelemetryModel,
        bridge: SyncBridge,
        *,
        interval: float = 0.5,
        noise: NoiseSource | None = None,
        profile: DriftProfile | None = None,
    ) -> None:
        self._model = model
        self._bridge = bridge
        self._interval = interval
        self._noise: NoiseSource = noise if noise is not None else random.Random()
        self._profile = profile or DriftProfile()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def should_advance(self) -> bool:
        state = self._model.state
        return state.connected and not state.disarmed

    async def tick(self) -> bool:
        """Run one step. Returns whether the state was advanced."""
        if not self.should_advance():
            return False
        patch = advance(self._model.state, self._interval, self._noise, self._profile)
        await self._bridge.submit(StateSection.TELEMETRY, patch)
        return True

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.tick()
            except Exception:
                _logger.exception("Simulator tick failed")
