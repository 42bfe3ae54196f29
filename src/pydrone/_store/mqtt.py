"""Retained-message store on an MQTT broker.

Each top-level field of the value at a key path is one retained message at
``<prefix>/<path>/<field>`` holding the field's JSON. A merge therefore only
publishes the fields it names, and concurrent merges of different fields
never overwrite each other. Non-mapping values (the alert list) are one
retained message at ``<prefix>/<path>``. An empty retained payload deletes.

paho-mqtt runs its network loop on its own thread; every callback is handed
to the asyncio loop with ``call_soon_threadsafe`` before touching state.
"""

from __future__ import annotations

import asyncio
import functools
import itertools
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from pydrone._redact import redact_for_log
from pydrone._store import ChangeCallback, Unsubscribe, split_path
from pydrone.config import DroneConfig
from pydrone.exceptions import StoreTransportError, StoreUnavailableError

_logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Topic layout helpers
# ------------------------------------------------------------------


def topic_for(prefix: str, path: str) -> str:
    """Topic of the key path *path* under *prefix*."""
    head = tuple(part for part in prefix.strip("/").split("/") if part)
    return "/".join((*head, *split_path(path)))


def relative_parts(base: str, topic: str) -> tuple[str, ...] | None:
    """Segments of *topic* below *base* (empty for *base* itself), else ``None``."""
    if topic == base:
        return ()
    if not topic.startswith(f"{base}/"):
        return None
    return tuple(part for part in topic[len(base) + 1 :].split("/") if part)


def assemble_value(retained: Mapping[str, Any], base: str) -> Any | None:
    """Rebuild the value at *base* from the retained messages under it."""
    value: Any = None
    children: list[tuple[tuple[str, ...], Any]] = []
    for topic, payload in retained.items():
        parts = relative_parts(base, topic)
        if parts is None:
            continue
        if parts:
            children.append((parts, payload))
        else:
            value = payload

    if not children:
        return value

    result: dict[str, Any] = dict(value) if isinstance(value, dict) else {}
    for parts, payload in sorted(children, key=lambda item: len(item[0])):
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = payload
    return result


def messages_for(topic: str, value: Any) -> dict[str, Any]:
    """Retained messages that represent *value* at *topic*."""
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return {f"{topic}/{key}": field for key, field in value.items() if field is not None}
    return {topic: value}


def encode_payload(value: Any) -> bytes:
    if value is None:
        return b""
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class _Watch:
    topic: str
    callback: ChangeCallback


# ------------------------------------------------------------------
# Client
# ------------------------------------------------------------------


class MqttStore:
    """Threaded paho-mqtt client exposing the store interface on an asyncio loop."""

    def __init__(self, config: DroneConfig) -> None:
        self._config = config
        self._loop: asyncio.AbstractEventLoop | None = None
        self._client: mqtt.Client | None = None
        self._connected: asyncio.Event | None = None
        self._connect_error: str | None = None
        self._retained: dict[str, Any] = {}
        self._watches: dict[int, _Watch] = {}
        self._filters: dict[str, int] = {}
        self._tokens = itertools.count(1)

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._connected is not None and self._connected.is_set()

    async def connect(self) -> None:
        config = self._config
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._connected = asyncio.Event()
        self._connect_error = None

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(_logger)
        if config.mqtt_username:
            client.username_pw_set(config.mqtt_username, config.mqtt_password)
        if config.mqtt_tls:
            client.tls_set()
        client.on_connect = self._on_connect
        client.on_message = self._on_message
        client.on_disconnect = self._on_disconnect

        _logger.debug(
            "MQTT connect requested %s",
            redact_for_log(
                {
                    "host": config.mqtt_host,
                    "port": config.mqtt_port,
                    "client_id": config.client_id,
                    "username": config.mqtt_username,
                    "password": config.mqtt_password,
                    "tls": config.mqtt_tls,
                }
            ),
        )
        try:
            await loop.run_in_executor(
                None,
                functools.partial(client.connect, config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive),
            )
        except OSError as exc:
            raise StoreUnavailableError(
                f"MQTT broker {config.mqtt_host}:{config.mqtt_port} unreachable: {exc}"
            ) from exc

        client.loop_start()
        self._client = client
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=config.store_timeout)
        except TimeoutError as exc:
            await self.close()
            raise StoreUnavailableError("Timed out waiting for MQTT connection") from exc
        if self._connect_error is not None:
            error = self._connect_error
            await self.close()
            raise StoreUnavailableError(f"MQTT connect failed: {error}")
        _logger.debug("MQTT network loop started")

    async def close(self) -> None:
        client = self._client
        self._client = None
        self._watches.clear()
        self._filters.clear()
        self._retained.clear()
        if self._connected is not None:
            self._connected.clear()
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
            _logger.debug("MQTT network loop stopped")

    # -- paho thread callbacks ------------------------------------------

    def _on_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.value != 0:
            _logger.warning("MQTT connect failed: %s", reason_code)
            self._call_in_loop(self._connect_done, str(reason_code))
            return
        _logger.debug("MQTT connected reason=%s", reason_code)
        for topic_filter in list(self._filters):
            client.subscribe(topic_filter, qos=1)
        self._call_in_loop(self._connect_done, None)

    def _on_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self._call_in_loop(self._handle_message, msg.topic, bytes(msg.payload))

    def _on_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if self._client is not None:
            _logger.debug("MQTT disconnected: %s", reason_code)

    def _call_in_loop(self, callback: Any, *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(callback, *args)

    # -- loop-side state ------------------------------------------------

    def _connect_done(self, error: str | None) -> None:
        self._connect_error = error
        if self._connected is not None:
            self._connected.set()

    def _handle_message(self, topic: str, payload: bytes) -> None:
        if not payload:
            self._retained.pop(topic, None)
        else:
            try:
                self._retained[topic] = json.loads(payload)
            except (UnicodeDecodeError, json.JSONDecodeError):
                _logger.debug("Dropping non-JSON payload on %s", topic)
                return

        for watch in list(self._watches.values()):
            if relative_parts(watch.topic, topic) is not None:
                watch.callback(assemble_value(self._retained, watch.topic))

    def _require(self, path: str) -> mqtt.Client:
        if self._client is None or not self.is_connected:
            raise StoreUnavailableError("Store client not connected", path=path)
        return self._client

    def _subscribe_filter(self, client: mqtt.Client, topic: str) -> bool:
        """Add a reference to ``<topic>/#``. Returns whether it was already active."""
        topic_filter = f"{topic}/#"
        count = self._filters.get(topic_filter, 0)
        self._filters[topic_filter] = count + 1
        if count == 0:
            client.subscribe(topic_filter, qos=1)
        return count > 0

    def _release_filter(self, topic: str) -> None:
        topic_filter = f"{topic}/#"
        count = self._filters.get(topic_filter, 0) - 1
        if count > 0:
            self._filters[topic_filter] = count
            return
        self._filters.pop(topic_filter, None)
        if self._client is not None:
            self._client.unsubscribe(topic_filter)
        for cached in [t for t in self._retained if relative_parts(topic, t) is not None]:
            if not any(relative_parts(f[:-2], cached) is not None for f in self._filters):
                self._retained.pop(cached, None)

    def _publish(self, client: mqtt.Client, topic: str, value: Any, path: str) -> None:
        info = client.publish(topic, encode_payload(value), qos=1, retain=True)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise StoreTransportError(f"MQTT publish to {topic} failed: rc={info.rc}", path=path)
        # Keep the cache ahead of the broker echo so a follow-up write sees these fields.
        if value is None:
            self._retained.pop(topic, None)
        else:
            self._retained[topic] = value

    # -- store interface ------------------------------------------------

    async def read(self, path: str) -> Any | None:
        client = self._require(path)
        topic = topic_for(self._config.mqtt_topic_prefix, path)
        warm = self._subscribe_filter(client, topic)
        try:
            if not warm:
                await asyncio.sleep(self._config.mqtt_read_settle)
            return assemble_value(self._retained, topic)
        finally:
            self._release_filter(topic)

    async def write(self, path: str, value: Any) -> None:
        client = self._require(path)
        topic = topic_for(self._config.mqtt_topic_prefix, path)
        messages = messages_for(topic, value)
        stale = [t for t in self._retained if relative_parts(topic, t) is not None and t not in messages]
        _logger.debug("MQTT write topic=%s fields=%d cleared=%d", topic, len(messages), len(stale))
        for stale_topic in stale:
            self._publish(client, stale_topic, None, path)
        for message_topic, payload in messages.items():
            self._publish(client, message_topic, payload, path)

    async def merge(self, path: str, fields: Mapping[str, Any]) -> None:
        client = self._require(path)
        topic = topic_for(self._config.mqtt_topic_prefix, path)
        _logger.debug("MQTT merge topic=%s keys=%s", topic, sorted(fields))
        for key, value in fields.items():
            self._publish(client, f"{topic}/{key}", value, path)

    async def subscribe(self, path: str, callback: ChangeCallback) -> Unsubscribe:
        client = self._require(path)
        loop = cast(asyncio.AbstractEventLoop, self._loop)
        topic = topic_for(self._config.mqtt_topic_prefix, path)
        token = next(self._tokens)
        self._watches[token] = _Watch(topic=topic, callback=callback)
        if self._subscribe_filter(client, topic):
            # Retained messages for a fresh filter arrive on their own.
            loop.call_soon(self._deliver_current, token)

        def _unsubscribe() -> None:
            if self._watches.pop(token, None) is not None:
                self._release_filter(topic)

        return _unsubscribe

    def _deliver_current(self, token: int) -> None:
        watch = self._watches.get(token)
        if watch is not None:
            watch.callback(assemble_value(self._retained, watch.topic))
