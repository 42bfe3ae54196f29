from __future__ import annotations

import asyncio

import pytest

from pydrone._store.memory import InMemoryBackend, InMemoryStore
from pydrone.exceptions import StoreError, StoreUnavailableError


async def _connected(backend: InMemoryBackend) -> InMemoryStore:
    store = InMemoryStore(backend)
    await store.connect()
    return store


@pytest.mark.asyncio
async def test_read_write_merge_round_trip() -> None:
    store = await _connected(InMemoryBackend())

    assert await store.read("drone/telemetry") is None

    await store.write("drone/telemetry", {"pitch": 10, "roll": 0})
    await store.merge("drone/telemetry", {"roll": 5})

    assert await store.read("drone/telemetry") == {"pitch": 10, "roll": 5}
    assert await store.read("drone") == {"telemetry": {"pitch": 10, "roll": 5}}


@pytest.mark.asyncio
async def test_merge_leaves_siblings_and_deletes_null_fields() -> None:
    store = await _connected(InMemoryBackend())
    await store.write("drone/controls", {"disarmed": True, "flightMode": "Stabilize"})

    await store.merge("drone/controls", {"flightMode": None, "droneMode": "Auto"})

    assert await store.read("drone/controls") == {"disarmed": True, "droneMode": "Auto"}


@pytest.mark.asyncio
async def test_values_are_copied_in_and_out() -> None:
    store = await _connected(InMemoryBackend())
    value = {"view": "live"}
    await store.write("drone/cameraView", value)
    value["view"] = "orientation"

    read_back = await store.read("drone/cameraView")
    read_back["view"] = "side-by-side"

    assert await store.read("drone/cameraView") == {"view": "live"}


@pytest.mark.asyncio
async def test_subscribe_delivers_current_value_then_own_writes() -> None:
    store = await _connected(InMemoryBackend())
    await store.write("drone/telemetry", {"pitch": 10})
    seen: list[object] = []

    await store.subscribe("drone/telemetry", seen.append)
    await store.merge("drone/telemetry", {"roll": 5})
    assert seen == []  # delivery is asynchronous

    await asyncio.sleep(0)
    assert seen == [{"pitch": 10}, {"pitch": 10, "roll": 5}]


@pytest.mark.asyncio
async def test_subscribers_see_writes_from_other_clients_in_order() -> None:
    backend = InMemoryBackend()
    writer = await _connected(backend)
    reader = await _connected(backend)
    seen: list[object] = []
    await reader.subscribe("drone/controls", seen.append)

    await writer.write("drone/controls", {"disarmed": True})
    await writer.merge("drone/controls", {"disarmed": False})
    await asyncio.sleep(0)

    assert seen == [None, {"disarmed": True}, {"disarmed": False}]


@pytest.mark.asyncio
async def test_ancestor_subscription_sees_child_changes_but_siblings_do_not() -> None:
    store = await _connected(InMemoryBackend())
    root_seen: list[object] = []
    sibling_seen: list[object] = []
    await store.subscribe("drone", root_seen.append)
    await store.subscribe("drone/alerts", sibling_seen.append)
    await asyncio.sleep(0)
    root_seen.clear()
    sibling_seen.clear()

    await store.merge("drone/telemetry", {"pitch": 1})
    await asyncio.sleep(0)

    assert root_seen == [{"telemetry": {"pitch": 1}}]
    assert sibling_seen == []


@pytest.mark.asyncio
async def test_unsubscribe_drops_already_queued_notifications() -> None:
    store = await _connected(InMemoryBackend())
    seen: list[object] = []
    unsubscribe = await store.subscribe("drone/telemetry", seen.append)

    await store.write("drone/telemetry", {"pitch": 3})
    unsubscribe()
    await asyncio.sleep(0)

    assert seen == []


@pytest.mark.asyncio
async def test_offline_backend_raises_unavailable() -> None:
    backend = InMemoryBackend()
    store = await _connected(backend)
    backend.available = False

    with pytest.raises(StoreUnavailableError):
        await store.read("drone/telemetry")
    with pytest.raises(StoreUnavailableError):
        await InMemoryStore(backend).connect()


@pytest.mark.asyncio
async def test_operations_require_connect() -> None:
    store = InMemoryStore()
    with pytest.raises(StoreUnavailableError):
        await store.write("drone/telemetry", {"pitch": 1})

    await store.connect()
    await store.close()
    assert not store.is_connected
    with pytest.raises(StoreUnavailableError):
        await store.read("drone/telemetry")


@pytest.mark.asyncio
async def test_empty_path_is_rejected() -> None:
    store = await _connected(InMemoryBackend())
    with pytest.raises(StoreError):
        await store.read("/")
