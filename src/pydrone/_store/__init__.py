"""Shared store clients.

Every backend implements :class:`StoreClient`: one-shot read, full-subtree
write, shallow merge of named fields, and change subscriptions that also
deliver the caller's own writes.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

from pydrone.exceptions import StoreError

if TYPE_CHECKING:
    import aiohttp

    from pydrone.config import DroneConfig

ChangeCallback = Callable[[Any], None]
"""Receives the full current value at the subscribed path (``None`` if absent)."""

Unsubscribe = Callable[[], None]


def split_path(path: str) -> tuple[str, ...]:
    """Split a slash-separated key path into its non-empty segments."""
    parts = tuple(part for part in path.strip("/").split("/") if part)
    if not parts:
        raise StoreError("Store path must not be empty", path=path)
    return parts


class StoreClient(Protocol):
    """Structural interface over the persistent shared store.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production backends concrete.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def read(self, path: str) -> Any | None: ...

    async def write(self, path: str, value: Any) -> None: ...

    async def merge(self, path: str, fields: Mapping[str, Any]) -> None: ...

    async def subscribe(self, path: str, callback: ChangeCallback) -> Unsubscribe: ...


def create_store(
    config: DroneConfig,
    *,
    session: aiohttp.ClientSession | None = None,
) -> StoreClient:
    """Build the store client selected by ``config.store_backend``."""
    if config.store_backend == "rest":
        from pydrone._store.rest import RestStore

        return RestStore(config, session=session)
    if config.store_backend == "mqtt":
        from pydrone._store.mqtt import MqttStore

        return MqttStore(config)

    from pydrone._store.memory import InMemoryBackend, InMemoryStore

    return InMemoryStore(InMemoryBackend())


__all__ = ["ChangeCallback", "StoreClient", "Unsubscribe", "create_store", "split_path"]
