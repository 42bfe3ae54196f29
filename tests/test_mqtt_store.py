from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from pydrone._store.mqtt import (
    MqttStore,
    assemble_value,
    encode_payload,
    messages_for,
    relative_parts,
    topic_for,
)
from pydrone.config import DroneConfig
from pydrone.exceptions import StoreTransportError, StoreUnavailableError


class _FakeInfo:
    def __init__(self, rc: int) -> None:
        self.rc = rc


class _FakeClient:
    """Stand-in for ``paho.mqtt.client.Client`` recording calls."""

    def __init__(self, rc: int = 0) -> None:
        self.rc = rc
        self.published: list[tuple[str, bytes, int, bool]] = []
        self.subscribed: list[str] = []
        self.unsubscribed: list[str] = []

    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> _FakeInfo:
        self.published.append((topic, payload, qos, retain))
        return _FakeInfo(self.rc)

    def subscribe(self, topic: str, qos: int = 0) -> tuple[int, int]:
        self.subscribed.append(topic)
        return (0, 1)

    def unsubscribe(self, topic: str) -> tuple[int, int]:
        self.unsubscribed.append(topic)
        return (0, 1)

    def disconnect(self) -> None:
        pass

    def loop_stop(self) -> None:
        pass


def _store_with_fake(client: _FakeClient, **config: Any) -> MqttStore:
    store = MqttStore(DroneConfig(store_backend="mqtt", mqtt_topic_prefix="fleet", mqtt_read_settle=0, **config))
    # Bypass the broker handshake; the store only needs a client, a loop and the connected flag.
    store._client = client  # type: ignore[assignment]
    store._loop = asyncio.get_running_loop()
    store._connected = asyncio.Event()
    store._connected.set()
    return store


# ------------------------------------------------------------------
# Topic layout
# ------------------------------------------------------------------


def test_topic_for_joins_prefix_and_path() -> None:
    assert topic_for("fleet", "drone/telemetry") == "fleet/drone/telemetry"
    assert topic_for("/a/b/", "/drone/") == "a/b/drone"
    assert topic_for("", "drone") == "drone"


def test_relative_parts() -> None:
    assert relative_parts("fleet/drone", "fleet/drone") == ()
    assert relative_parts("fleet/drone", "fleet/drone/telemetry/pitch") == ("telemetry", "pitch")
    assert relative_parts("fleet/drone", "fleet/droneX/pitch") is None


def test_assemble_value_rebuilds_tree() -> None:
    retained = {
        "fleet/drone/telemetry/pitch": 10,
        "fleet/drone/telemetry/roll": 0,
        "fleet/drone/alerts": [{"id": 1}],
        "fleet/other/x": 1,
    }

    assert assemble_value(retained, "fleet/drone/telemetry") == {"pitch": 10, "roll": 0}
    assert assemble_value(retained, "fleet/drone/alerts") == [{"id": 1}]
    assert assemble_value(retained, "fleet/drone") == {
        "telemetry": {"pitch": 10, "roll": 0},
        "alerts": [{"id": 1}],
    }
    assert assemble_value(retained, "fleet/missing") is None


def test_messages_for_splits_mappings_into_fields() -> None:
    assert messages_for("t", {"pitch": 1, "roll": None}) == {"t/pitch": 1}
    assert messages_for("t", [1, 2]) == {"t": [1, 2]}
    assert messages_for("t", None) == {}


def test_encode_payload() -> None:
    assert encode_payload(None) == b""
    assert json.loads(encode_payload({"view": "live"})) == {"view": "live"}


# ------------------------------------------------------------------
# Store operations against a fake client
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_merge_publishes_only_named_fields_as_retained() -> None:
    client = _FakeClient()
    store = _store_with_fake(client)

    await store.merge("drone/controls", {"disarmed": False})

    assert client.published == [("fleet/drone/controls/disarmed", b"false", 1, True)]


@pytest.mark.asyncio
async def test_write_clears_fields_missing_from_new_value() -> None:
    client = _FakeClient()
    store = _store_with_fake(client)
    store._handle_message("fleet/drone/telemetry/pitch", b"10")
    store._handle_message("fleet/drone/telemetry/stale", b"1")

    await store.write("drone/telemetry", {"pitch": 5})

    assert ("fleet/drone/telemetry/stale", b"", 1, True) in client.published
    assert ("fleet/drone/telemetry/pitch", b"5", 1, True) in client.published
    assert client.published.index(("fleet/drone/telemetry/stale", b"", 1, True)) == 0


@pytest.mark.asyncio
async def test_subscription_receives_assembled_group_on_each_message() -> None:
    client = _FakeClient()
    store = _store_with_fake(client)
    seen: list[Any] = []

    unsubscribe = await store.subscribe("drone/telemetry", seen.append)
    assert client.subscribed == ["fleet/drone/telemetry/#"]

    store._handle_message("fleet/drone/telemetry/pitch", b"10")
    store._handle_message("fleet/drone/telemetry/roll", b"5")
    store._handle_message("fleet/drone/controls/disarmed", b"true")
    store._handle_message("fleet/drone/telemetry/roll", b"")
    store._handle_message("fleet/drone/telemetry/pitch", b"not json")

    assert seen == [{"pitch": 10}, {"pitch": 10, "roll": 5}, {"pitch": 10}]

    unsubscribe()
    assert client.unsubscribed == ["fleet/drone/telemetry/#"]


@pytest.mark.asyncio
async def test_second_subscription_on_warm_filter_gets_current_value() -> None:
    client = _FakeClient()
    store = _store_with_fake(client)
    await store.subscribe("drone/cameraView", lambda value: None)
    store._handle_message("fleet/drone/cameraView/view", b'"live"')
    seen: list[Any] = []

    await store.subscribe("drone/cameraView", seen.append)
    await asyncio.sleep(0)

    assert seen == [{"view": "live"}]
    assert client.subscribed == ["fleet/drone/cameraView/#"]


@pytest.mark.asyncio
async def test_read_returns_retained_value_after_settle() -> None:
    client = _FakeClient()
    store = _store_with_fake(client)
    loop = asyncio.get_running_loop()
    loop.call_soon(store._handle_message, "fleet/drone/controls/flightMode", b'"Loiter"')

    value = await store.read("drone/controls")

    assert value == {"flightMode": "Loiter"}
    assert client.unsubscribed == ["fleet/drone/controls/#"]


@pytest.mark.asyncio
async def test_publish_failure_raises_transport_error() -> None:
    store = _store_with_fake(_FakeClient(rc=4))

    with pytest.raises(StoreTransportError):
        await store.merge("drone/telemetry", {"pitch": 1})


@pytest.mark.asyncio
async def test_operations_require_connection() -> None:
    store = MqttStore(DroneConfig(store_backend="mqtt"))
    with pytest.raises(StoreUnavailableError):
        await store.read("drone/telemetry")
