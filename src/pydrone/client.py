"""High-level client wiring the store, state, dispatcher and simulator."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime, timedelta
from typing import Any

from pydrone._constants import ALERTS_KEY, key_path
from pydrone._redact import redact_for_log
from pydrone._store import StoreClient, create_store
from pydrone.alerts import AlertLog, BatteryWatch
from pydrone.bridge import SyncBridge
from pydrone.config import DroneConfig
from pydrone.dispatcher import CommandDispatcher
from pydrone.exceptions import DroneClientError, StoreError
from pydrone.models.alert import AlertEntry, AlertType
from pydrone.models.control import CameraView
from pydrone.models.telemetry import VehicleState
from pydrone.simulator import DynamicsSimulator, NoiseSource
from pydrone.state.events import StateSection
from pydrone.state.store import TelemetryModel

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DroneClient:
    """One operator's connection to the shared vehicle.

    Usage::

        async with DroneClient(DroneConfig.from_env()) as client:
            await client.dispatcher.toggle_arm()
            print(client.state.pitch, len(client.alerts))

    A *store* passed in is connected by :meth:`start` but never closed by
    :meth:`close`; pass one to share an :class:`~pydrone._store.memory.InMemoryBackend`
    between several clients in one process.
    """

    def __init__(
        self,
        config: DroneConfig | None = None,
        *,
        store: StoreClient | None = None,
        noise: NoiseSource | None = None,
        clock: Callable[[], datetime] = _utcnow,
        on_change: Callable[[VehicleState], None] | None = None,
    ) -> None:
        self._config = config or DroneConfig()
        self._store: StoreClient = store if store is not None else create_store(self._config)
        self._owns_store = store is None
        self._on_change = on_change

        self._model = TelemetryModel(
            clock=clock,
            optimistic_ttl=timedelta(seconds=self._config.optimistic_ttl),
        )
        self._bridge = SyncBridge(
            self._store,
            self._model,
            root=self._config.store_root,
            on_change=self._on_state_change,
        )
        self._alerts = AlertLog(
            self._store,
            path=key_path(self._config.store_root, ALERTS_KEY),
            origin=self._config.client_id,
            clock=clock,
        )
        self._dispatcher = CommandDispatcher(
            self._model,
            self._bridge,
            self._alerts,
            reset_throttle=self._config.reset_throttle,
        )
        self._simulator: DynamicsSimulator | None = None
        if self._config.simulate:
            self._simulator = DynamicsSimulator(
                self._model,
                self._bridge,
                interval=self._config.tick_interval,
                noise=noise,
            )
        self._battery_watch = BatteryWatch(self._config.low_battery_threshold)

        self._handshake: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._started = False

    async def __aenter__(self) -> DroneClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> DroneConfig:
        return self._config

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def state(self) -> VehicleState:
        """Current local projection of the shared vehicle."""
        return self._model.state

    @property
    def camera_view(self) -> CameraView:
        return self._model.camera_view

    @property
    def alerts(self) -> tuple[AlertEntry, ...]:
        return self._alerts.entries

    @property
    def model(self) -> TelemetryModel:
        return self._model

    @property
    def simulator(self) -> DynamicsSimulator | None:
        return self._simulator

    @property
    def dispatcher(self) -> CommandDispatcher:
        if not self._started:
            raise DroneClientError("Client not started. Use 'async with DroneClient(...) as client:'")
        return self._dispatcher

    def snapshot(self) -> dict[str, Any]:
        """Store-shaped view of the local state, for display and debugging."""
        return {
            "state": self._model.state.to_store(),
            "cameraView": self._model.camera_view.value,
            "alerts": [entry.to_store() for entry in self._alerts.entries],
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect, seed absent key groups, subscribe and start timers.

        A store failure is recorded as one error alert; the client keeps
        running on local defaults.
        """
        if self._started:
            return
        self._started = True
        loop = asyncio.get_running_loop()
        _logger.debug("Starting client config=%s", redact_for_log(dataclasses.asdict(self._config)))

        try:
            await self._store.connect()
            seeded = await self._bridge.initialize()
            if seeded:
                _logger.debug("Seeded key groups: %s", ", ".join(section.value for section in seeded))
            await self._bridge.start()
            await self._alerts.start()
        except StoreError as exc:
            _logger.warning("Store initialization failed: %s", exc)
            await self._alerts.append(AlertType.ERROR, f"Store initialization failed: {exc}")

        self._handshake = loop.call_later(self._config.connect_delay, self._on_handshake)
        if self._simulator is not None:
            self._simulator.start()

    async def close(self) -> None:
        """Cancel timers and tasks, unsubscribe, close an owned store."""
        handshake = self._handshake
        self._handshake = None
        if handshake is not None:
            handshake.cancel()

        if self._simulator is not None:
            await self._simulator.stop()

        tasks = list(self._tasks)
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._bridge.stop()
        self._alerts.stop()
        if self._owns_store:
            await self._store.close()
        self._started = False

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_handshake(self) -> None:
        self._handshake = None
        if self._started:
            self._spawn(self._complete_handshake())

    async def _complete_handshake(self) -> None:
        await self._bridge.submit(StateSection.TELEMETRY, {"connected": True})
        await self._alerts.append(AlertType.INFO, "Drone connected successfully")
        self._check_battery()

    def _check_battery(self) -> None:
        if not self._config.emits_battery_alerts:
            return
        level = self._model.state.battery_level
        if self._battery_watch.observe(level):
            self._spawn(self._alerts.append(AlertType.WARNING, f"Low battery warning: {level:.0f}%"))

    def _on_state_change(self) -> None:
        if not self._started:
            return
        self._check_battery()
        if self._on_change is not None:
            self._on_change(self._model.state)
