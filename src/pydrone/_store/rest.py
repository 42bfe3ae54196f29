"""REST + event-stream client for a realtime-database style store.

Every key path maps to ``{store_url}/{path}.json``. Reads are ``GET``, full
writes ``PUT``, shallow merges ``PATCH`` and deletes ``DELETE``. Change
subscriptions hold a streaming ``GET`` with ``Accept: text/event-stream``
open and fold its ``put``/``patch`` events into the current value.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import aiohttp

from pydrone._redact import redact_for_log, redact_url
from pydrone._store import ChangeCallback, Unsubscribe, split_path
from pydrone.config import DroneConfig
from pydrone.exceptions import StoreTransportError, StoreUnavailableError

_logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Event-stream decoding
# ------------------------------------------------------------------


@dataclass(frozen=True)
class StreamEvent:
    """One dispatched server-sent event."""

    event: str
    data: str


class EventStreamDecoder:
    """Incremental line-based server-sent events decoder."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []

    def feed_line(self, line: str) -> StreamEvent | None:
        """Consume one line. Returns an event when a blank line dispatches one."""
        line = line.rstrip("\r\n")
        if not line:
            if not self._event and not self._data:
                return None
            event = StreamEvent(event=self._event or "message", data="\n".join(self._data))
            self._event = ""
            self._data = []
            return event
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        return None


def apply_stream_event(current: Any, path: str, data: Any, *, patch: bool) -> Any:
    """Fold one ``put``/``patch`` stream event into *current*.

    *path* is relative to the subscribed location (``"/"`` is the location
    itself). A ``put`` replaces the value at *path* (``None`` deletes it); a
    ``patch`` shallow-merges the mapping *data* into the value at *path*.
    """
    parts = tuple(part for part in path.strip("/").split("/") if part)
    result = copy.deepcopy(current)

    if not parts:
        if not patch:
            return copy.deepcopy(data)
        target = result if isinstance(result, dict) else {}
        _merge_into(target, data)
        return target or None

    if not isinstance(result, dict):
        result = {}
    node = result
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child

    leaf = parts[-1]
    if patch:
        target = node.get(leaf)
        if not isinstance(target, dict):
            target = {}
        _merge_into(target, data)
        node[leaf] = target
    elif data is None:
        node.pop(leaf, None)
    else:
        node[leaf] = copy.deepcopy(data)
    return result


def _merge_into(target: dict[str, Any], fields: Any) -> None:
    if not isinstance(fields, Mapping):
        return
    for key, value in fields.items():
        if value is None:
            target.pop(key, None)
        else:
            target[key] = copy.deepcopy(value)


# ------------------------------------------------------------------
# Client
# ------------------------------------------------------------------


class RestStore:
    """Store client over HTTP using :mod:`aiohttp`."""

    def __init__(
        self,
        config: DroneConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = config.store_url.rstrip("/")
        self._auth = config.store_auth
        self._timeout = aiohttp.ClientTimeout(total=config.store_timeout)
        self._stream_timeout = aiohttp.ClientTimeout(total=None, sock_connect=config.store_timeout)
        self._http = session
        self._owns_session = session is None
        self._streams: set[asyncio.Task[None]] = set()

    async def connect(self) -> None:
        if self._http is None:
            self._http = aiohttp.ClientSession()

    async def close(self) -> None:
        streams = list(self._streams)
        self._streams.clear()
        for task in streams:
            task.cancel()
        if streams:
            await asyncio.gather(*streams, return_exceptions=True)
        if self._owns_session and self._http is not None:
            await self._http.close()
            self._http = None

    def _require(self, path: str) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            raise StoreUnavailableError("Store client not connected", path=path)
        return self._http

    def _url(self, path: str) -> str:
        url = f"{self._base_url}/{'/'.join(split_path(path))}.json"
        if self._auth:
            url = f"{url}?{urlencode({'auth': self._auth})}"
        return url

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        http = self._require(path)
        url = self._url(path)
        _logger.debug("%s %s payload=%s", method, redact_url(url), redact_for_log(payload, max_string=200))

        kwargs: dict[str, Any] = {"timeout": self._timeout}
        if method in {"PUT", "PATCH"}:
            kwargs["data"] = json.dumps(payload, separators=(",", ":"))
            kwargs["headers"] = {"content-type": "application/json; charset=UTF-8"}

        try:
            async with http.request(method, url, **kwargs) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise StoreTransportError(
                        f"HTTP {resp.status} from {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
        except StoreTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StoreTransportError(f"Request to {path} failed: {exc}", path=path) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreTransportError(f"Invalid JSON from {path}: {text[:200]}", path=path) from exc

    async def read(self, path: str) -> Any | None:
        return await self._request("GET", path)

    async def write(self, path: str, value: Any) -> None:
        if value is None:
            await self._request("DELETE", path)
            return
        await self._request("PUT", path, value)

    async def merge(self, path: str, fields: Mapping[str, Any]) -> None:
        await self._request("PATCH", path, dict(fields))

    async def subscribe(self, path: str, callback: ChangeCallback) -> Unsubscribe:
        self._require(path)
        task = asyncio.get_running_loop().create_task(self._stream(path, callback))
        self._streams.add(task)
        task.add_done_callback(self._streams.discard)

        def _unsubscribe() -> None:
            self._streams.discard(task)
            task.cancel()

        return _unsubscribe

    async def _stream(self, path: str, callback: ChangeCallback) -> None:
        http = self._require(path)
        url = self._url(path)
        _logger.debug("STREAM %s", redact_url(url))

        decoder = EventStreamDecoder()
        current: Any = None
        try:
            async with http.get(
                url,
                headers={"accept": "text/event-stream"},
                timeout=self._stream_timeout,
            ) as resp:
                if resp.status != 200:
                    _logger.warning("Event stream for %s rejected: HTTP %s", path, resp.status)
                    return
                async for raw_line in resp.content:
                    event = decoder.feed_line(raw_line.decode("utf-8", errors="replace"))
                    if event is None or event.event == "keep-alive":
                        continue
                    if event.event in {"cancel", "auth_revoked"}:
                        _logger.warning("Event stream for %s closed by server: %s", path, event.event)
                        return
                    if event.event not in {"put", "patch"}:
                        _logger.debug("Ignoring stream event %s for %s", event.event, path)
                        continue
                    try:
                        body = json.loads(event.data)
                    except json.JSONDecodeError:
                        _logger.debug("Dropping malformed stream event for %s: %s", path, event.data[:200])
                        continue
                    if not isinstance(body, dict):
                        continue
                    current = apply_stream_event(
                        current,
                        str(body.get("path") or "/"),
                        body.get("data"),
                        patch=event.event == "patch",
                    )
                    callback(copy.deepcopy(current))
        except aiohttp.ClientError as exc:
            _logger.warning("Event stream for %s ended: %s", path, exc)
        else:
            _logger.debug("Event stream for %s closed", path)
