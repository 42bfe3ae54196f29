from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from pydrone._store.memory import InMemoryBackend, InMemoryStore
from pydrone.alerts import AlertLog, BatteryWatch
from pydrone.models.alert import AlertType

_PATH = "drone/alerts"


def _frozen_clock() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


async def _log(backend: InMemoryBackend, origin: str) -> AlertLog:
    store = InMemoryStore(backend)
    await store.connect()
    return AlertLog(store, path=_PATH, origin=origin, clock=_frozen_clock)


@pytest.mark.asyncio
async def test_append_writes_the_whole_list() -> None:
    backend = InMemoryBackend()
    log = await _log(backend, "operator-1")

    first = await log.append(AlertType.INFO, "Drone connected successfully")
    second = await log.append(AlertType.WARNING, "Low battery warning: 29%")

    stored = backend.get(_PATH)
    assert [item["message"] for item in stored] == ["Drone connected successfully", "Low battery warning: 29%"]
    assert stored[0]["origin"] == "operator-1"
    assert len(log) == 2
    # Same clock reading, ids still strictly increase.
    assert second.id == first.id + 1


@pytest.mark.asyncio
async def test_subscribed_log_adopts_remote_list() -> None:
    backend = InMemoryBackend()
    writer = await _log(backend, "a")
    reader = await _log(backend, "b")
    await reader.start()

    await writer.append(AlertType.INFO, "Flight mode changed to Loiter")
    await asyncio.sleep(0)

    assert [entry.message for entry in reader.entries] == ["Flight mode changed to Loiter"]
    assert reader.entries[0].origin == "a"
    reader.stop()


@pytest.mark.asyncio
async def test_concurrent_appends_from_two_clients_are_lossy() -> None:
    backend = InMemoryBackend()
    alpha = await _log(backend, "alpha")
    beta = await _log(backend, "beta")
    await alpha.start()
    await beta.start()
    await asyncio.sleep(0)

    # Neither client has seen the other's entry when it writes.
    await alpha.append(AlertType.INFO, "Drone armed")
    await beta.append(AlertType.INFO, "Drone disarmed")
    await asyncio.sleep(0)

    assert [entry.message for entry in alpha.entries] == ["Drone disarmed"]
    assert [entry.message for entry in beta.entries] == ["Drone disarmed"]


@pytest.mark.asyncio
async def test_stale_echo_does_not_drop_interleaved_local_append() -> None:
    backend = InMemoryBackend()
    log = await _log(backend, "solo")
    await log.start()
    await asyncio.sleep(0)

    await log.append(AlertType.INFO, "a")
    # Runs after the echo of [a] is delivered but before the echo of [a, b].
    background = asyncio.get_running_loop().create_task(log.append(AlertType.INFO, "c"))
    await log.append(AlertType.INFO, "b")
    await background
    for _ in range(3):
        await asyncio.sleep(0)

    assert [entry.message for entry in log.entries] == ["a", "b", "c"]
    assert [item["message"] for item in backend.get(_PATH)] == ["a", "b", "c"]
    assert log.pending == ()
    log.stop()


@pytest.mark.asyncio
async def test_unconfirmed_entry_survives_remote_list_without_it() -> None:
    backend = InMemoryBackend()
    log = await _log(backend, "solo")
    entry = await log.append(AlertType.INFO, "Drone armed")

    log._on_remote([])

    assert log.entries == (entry,)
    assert log.pending == (entry,)

    log._on_remote([entry.to_store()])

    assert log.entries == (entry,)
    assert log.pending == ()


@pytest.mark.asyncio
async def test_failed_write_keeps_local_entry() -> None:
    backend = InMemoryBackend()
    log = await _log(backend, "solo")
    backend.available = False

    entry = await log.append(AlertType.ERROR, "Store initialization failed")

    assert log.entries == (entry,)
    assert backend.get(_PATH) is None


@pytest.mark.asyncio
async def test_absent_remote_list_keeps_local_cache() -> None:
    backend = InMemoryBackend()
    log = await _log(backend, "solo")
    await log.append(AlertType.INFO, "Drone armed")

    log._on_remote(None)

    assert len(log) == 1


def test_battery_watch_fires_once_per_downward_crossing() -> None:
    watch = BatteryWatch(threshold=30)
    levels = [35.0, 30.0, 29.99, 29.5, 28.0, 30.0, 31.0, 29.0, 10.0]

    fired = [watch.observe(level) for level in levels]

    assert fired == [False, False, True, False, False, False, False, True, False]


def test_battery_watch_fires_on_first_observation_below_threshold() -> None:
    watch = BatteryWatch()
    assert watch.threshold == 30.0
    assert watch.observe(25.0) is True
    assert watch.observe(24.0) is False
