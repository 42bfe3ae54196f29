from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from pydrone._store.memory import InMemoryBackend, InMemoryStore
from pydrone.client import DroneClient
from pydrone.config import DroneConfig
from pydrone.exceptions import DroneClientError
from pydrone.models.alert import AlertType
from pydrone.models.control import Direction, ThrottleStep


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _config(**kwargs: object) -> DroneConfig:
    values: dict[str, object] = {"connect_delay": 0.0, "simulate": False, "tick_interval": 60.0}
    values.update(kwargs)
    return DroneConfig(**values)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_handshake_marks_connected_and_logs_alert() -> None:
    async with DroneClient(_config()) as client:
        await _wait_for(lambda: client.state.connected)
        await _wait_for(lambda: len(client.alerts) == 1)

        assert client.alerts[0].message == "Drone connected successfully"
        assert client.alerts[0].type == AlertType.INFO
        assert client.alerts[0].origin == client.config.client_id


@pytest.mark.asyncio
async def test_dispatcher_requires_started_client() -> None:
    client = DroneClient(_config())
    with pytest.raises(DroneClientError):
        _ = client.dispatcher


@pytest.mark.asyncio
async def test_unavailable_store_yields_single_error_alert_and_keeps_running() -> None:
    backend = InMemoryBackend()
    backend.available = False
    client = DroneClient(_config(), store=InMemoryStore(backend))

    await client.start()
    try:
        errors = [entry for entry in client.alerts if entry.type == AlertType.ERROR]
        assert len(errors) == 1
        assert errors[0].message.startswith("Store initialization failed")

        await _wait_for(lambda: client.state.connected)
        await client.dispatcher.nudge(Direction.FORWARD)
        assert client.state.pitch == 5.0
        assert len([entry for entry in client.alerts if entry.type == AlertType.ERROR]) == 1
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_offline_client_keeps_local_state_past_optimistic_ttl() -> None:
    backend = InMemoryBackend()
    backend.available = False
    clock = _Clock()
    client = DroneClient(_config(optimistic_ttl=5.0), store=InMemoryStore(backend), clock=clock)

    async with client:
        await _wait_for(lambda: client.state.connected)
        await client.dispatcher.toggle_arm()
        await client.dispatcher.throttle_step(ThrottleStep.UP)
        assert (client.state.connected, client.state.disarmed) == (True, False)

        clock.advance(6)

        assert (client.state.connected, client.state.disarmed) == (True, False)
        assert client.state.throttle_percent == 50.0
        assert [entry.message for entry in client.alerts][-2:] == ["Drone armed", "Throttle up: 50%"]


@pytest.mark.asyncio
async def test_close_cancels_pending_handshake_and_simulator() -> None:
    client = DroneClient(_config(connect_delay=30.0, simulate=True))
    await client.start()
    assert client.simulator is not None
    assert client.simulator.is_running

    await client.close()

    assert not client.simulator.is_running
    assert not client.is_started
    await asyncio.sleep(0)
    assert client.state.connected is False


@pytest.mark.asyncio
async def test_low_battery_on_connect_alerts_once() -> None:
    backend = InMemoryBackend()
    backend.set("drone/telemetry", {"batteryLevel": 25.0})
    client = DroneClient(_config(simulate=True), store=InMemoryStore(backend))

    async with client:
        await _wait_for(lambda: any(entry.type == AlertType.WARNING for entry in client.alerts))
        await asyncio.sleep(0.05)

        warnings = [entry for entry in client.alerts if entry.type == AlertType.WARNING]
        assert [entry.message for entry in warnings] == ["Low battery warning: 25%"]


@pytest.mark.asyncio
async def test_simulated_drain_across_threshold_alerts_once() -> None:
    backend = InMemoryBackend()
    backend.set("drone/telemetry", {"batteryLevel": 30.015})
    client = DroneClient(
        _config(simulate=True, tick_interval=0.01),
        store=InMemoryStore(backend),
        noise=random.Random(7),
    )

    async with client:
        await _wait_for(lambda: client.state.connected)
        assert not [entry for entry in client.alerts if entry.type == AlertType.WARNING]
        await client.dispatcher.toggle_arm()
        await _wait_for(lambda: client.state.battery_level < 29.9)
        await asyncio.sleep(0.05)

        warnings = [entry for entry in client.alerts if entry.type == AlertType.WARNING]
        assert len(warnings) == 1
        assert warnings[0].message == "Low battery warning: 30%"
        assert backend.get("drone/telemetry")["batteryLevel"] < 30.0


@pytest.mark.asyncio
async def test_observer_client_does_not_emit_battery_alerts() -> None:
    backend = InMemoryBackend()
    backend.set("drone/telemetry", {"batteryLevel": 25.0})
    client = DroneClient(_config(simulate=False), store=InMemoryStore(backend))

    async with client:
        await _wait_for(lambda: client.state.connected)
        await asyncio.sleep(0.05)

        assert not [entry for entry in client.alerts if entry.type == AlertType.WARNING]


@pytest.mark.asyncio
async def test_two_clients_share_one_vehicle() -> None:
    backend = InMemoryBackend()
    seen: list[float] = []
    alpha = DroneClient(_config(client_id="alpha"), store=InMemoryStore(backend))
    beta = DroneClient(
        _config(client_id="beta"),
        store=InMemoryStore(backend),
        on_change=lambda state: seen.append(state.pitch),
    )

    async with alpha, beta:
        await _wait_for(lambda: alpha.state.connected and beta.state.connected)
        await alpha.dispatcher.toggle_arm()
        await alpha.dispatcher.nudge(Direction.FORWARD)
        await _wait_for(lambda: beta.state.pitch == 5.0)

        assert beta.state.disarmed is False
        assert 5.0 in seen
        snapshot = beta.snapshot()
        assert snapshot["state"]["pitch"] == 5.0
        assert snapshot["cameraView"] == "side-by-side"


@pytest.mark.asyncio
async def test_start_logs_config_with_secrets_redacted(caplog: pytest.LogCaptureFixture) -> None:
    config = _config(store_auth="store-token-123", mqtt_password="broker-pw-456", connect_delay=30.0)
    caplog.set_level(logging.DEBUG, logger="pydrone.client")

    async with DroneClient(config):
        pass

    started = [record.getMessage() for record in caplog.records if "Starting client" in record.getMessage()]
    assert len(started) == 1
    assert "store-token-123" not in started[0]
    assert "broker-pw-456" not in started[0]
    assert "<redacted>" in started[0]
