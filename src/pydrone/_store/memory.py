"""In-process shared store.

:class:`InMemoryBackend` is the database; each :class:`InMemoryStore` is one
client connection to it. Several clients in one process can share a backend
to run a multi-operator session without a network service.

Change notifications are delivered on the next event-loop iteration, never
synchronously inside ``write``/``merge``, so callers see the same
asynchronous echo they would get from a remote store.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydrone._store import ChangeCallback, Unsubscribe, split_path
from pydrone.exceptions import StoreUnavailableError

_logger = logging.getLogger(__name__)


def _related(watched: tuple[str, ...], changed: tuple[str, ...]) -> bool:
    """A change at *changed* is visible at *watched* (ancestor, self, or descendant)."""
    size = min(len(watched), len(changed))
    return watched[:size] == changed[:size]


@dataclass(frozen=True)
class _Watch:
    parts: tuple[str, ...]
    deliver: Callable[[Any], None]


class InMemoryBackend:
    """Hierarchical key-path database held in memory."""

    def __init__(self) -> None:
        self._root: dict[str, Any] = {}
        self._watches: list[_Watch] = []
        self.available = True

    def check_available(self, path: str = "") -> None:
        if not self.available:
            raise StoreUnavailableError("In-memory store is offline", path=path)

    def _node(self, parts: tuple[str, ...]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _parent(self, parts: tuple[str, ...]) -> dict[str, Any]:
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        return node

    def get(self, path: str) -> Any | None:
        return copy.deepcopy(self._node(split_path(path)))

    def set(self, path: str, value: Any) -> None:
        parts = split_path(path)
        parent = self._parent(parts)
        if value is None:
            parent.pop(parts[-1], None)
        else:
            parent[parts[-1]] = copy.deepcopy(value)
        self._notify(parts)

    def update(self, path: str, fields: Mapping[str, Any]) -> None:
        parts = split_path(path)
        parent = self._parent(parts)
        node = parent.get(parts[-1])
        if not isinstance(node, dict):
            node = {}
            parent[parts[-1]] = node
        for key, value in fields.items():
            if value is None:
                node.pop(key, None)
            else:
                node[key] = copy.deepcopy(value)
        self._notify(parts)

    def watch(self, path: str, deliver: Callable[[Any], None]) -> Callable[[], None]:
        watch = _Watch(parts=split_path(path), deliver=deliver)
        self._watches.append(watch)

        def _unwatch() -> None:
            if watch in self._watches:
                self._watches.remove(watch)

        return _unwatch

    def _notify(self, changed: tuple[str, ...]) -> None:
        for watch in list(self._watches):
            if _related(watch.parts, changed):
                watch.deliver(copy.deepcopy(self._node(watch.parts)))


class InMemoryStore:
    """One client connection to an :class:`InMemoryBackend`."""

    def __init__(self, backend: InMemoryBackend | None = None) -> None:
        self.backend = backend if backend is not None else InMemoryBackend()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscriptions: dict[int, Callable[[], None]] = {}
        self._tokens = itertools.count(1)

    @property
    def is_connected(self) -> bool:
        return self._loop is not None

    async def connect(self) -> None:
        self.backend.check_available()
        self._loop = asyncio.get_running_loop()

    async def close(self) -> None:
        for unwatch in list(self._subscriptions.values()):
            unwatch()
        self._subscriptions.clear()
        self._loop = None

    def _require(self, path: str) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise StoreUnavailableError("Store client not connected", path=path)
        self.backend.check_available(path)
        return self._loop

    async def read(self, path: str) -> Any | None:
        self._require(path)
        return self.backend.get(path)

    async def write(self, path: str, value: Any) -> None:
        self._require(path)
        _logger.debug("write path=%s", path)
        self.backend.set(path, value)

    async def merge(self, path: str, fields: Mapping[str, Any]) -> None:
        self._require(path)
        _logger.debug("merge path=%s keys=%s", path, sorted(fields))
        self.backend.update(path, fields)

    async def subscribe(self, path: str, callback: ChangeCallback) -> Unsubscribe:
        loop = self._require(path)
        token = next(self._tokens)

        def _deliver(value: Any) -> None:
            loop.call_soon(self._dispatch, token, callback, value)

        self._subscriptions[token] = self.backend.watch(path, _deliver)
        _deliver(self.backend.get(path))

        def _unsubscribe() -> None:
            unwatch = self._subscriptions.pop(token, None)
            if unwatch is not None:
                unwatch()

        return _unsubscribe

    def _dispatch(self, token: int, callback: ChangeCallback, value: Any) -> None:
        # Notifications queued before an unsubscribe must not fire after it.
        if token not in self._subscriptions:
            return
        callback(value)
