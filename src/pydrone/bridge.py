"""Synchronization bridge between the store and the local telemetry model.

Each key group (telemetry, controls, camera view) is written with the
store's shallow merge and subscribed independently, so a write to one group
never clobbers a concurrent writer of another. Every notification, including
the echo of this client's own writes, is folded into the
:class:`~pydrone.state.store.TelemetryModel`; reconciliation is idempotent so
the echo never causes flicker.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydrone._constants import DEFAULT_ROOT, key_path
from pydrone._store import StoreClient, Unsubscribe
from pydrone.exceptions import StoreError
from pydrone.ingestion.remote import (
    build_local_update,
    build_remote_update,
    build_unsynced_update,
)
from pydrone.state.events import StateSection
from pydrone.state.store import TelemetryModel, default_payloads

_logger = logging.getLogger(__name__)


class SyncBridge:
    """Propagates local patches to the store and reconciles remote changes."""

    def __init__(
        self,
        store: StoreClient,
        model: TelemetryModel,
        *,
        root: str = DEFAULT_ROOT,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._store = store
        self._model = model
        self._root = root
        self._on_change = on_change
        self._unsubscribes: list[Unsubscribe] = []

    @property
    def model(self) -> TelemetryModel:
        return self._model

    @property
    def is_subscribed(self) -> bool:
        return bool(self._unsubscribes)

    def path_for(self, section: StateSection) -> str:
        return key_path(self._root, section.value)

    async def initialize(
        self,
        defaults: Mapping[StateSection, dict[str, Any]] | None = None,
    ) -> list[StateSection]:
        """Seed key groups that do not exist yet.

        The read-then-write is not atomic: two clients connecting at once may
        both seed, and the last write wins. Both payloads carry the same field
        set so either outcome is a valid schema.

        Returns the groups this client seeded. Store failures propagate.
        """
        payloads = defaults if defaults is not None else default_payloads(self._model.state)
        seeded: list[StateSection] = []
        for section, payload in payloads.items():
            path = self.path_for(section)
            existing = await self._store.read(path)
            if existing is None:
                _logger.debug("Seeding %s with defaults", path)
                await self._store.write(path, dict(payload))
                seeded.append(section)
                continue
            update = build_remote_update(section, existing)
            if update is not None and self._model.apply(update):
                self._notify()
        return seeded

    async def start(self) -> None:
        """Subscribe to every key group."""
        if self._unsubscribes:
            return
        for section in StateSection:
            unsubscribe = await self._store.subscribe(
                self.path_for(section),
                functools.partial(self._on_remote, section),
            )
            self._unsubscribes.append(unsubscribe)

    def stop(self) -> None:
        unsubscribes = self._unsubscribes
        self._unsubscribes = []
        for unsubscribe in unsubscribes:
            unsubscribe()

    async def submit(self, section: StateSection, patch: Mapping[str, Any]) -> bool:
        """Apply *patch* optimistically, then merge it into the store.

        Returns ``False`` when the store write failed. The write is not
        retried; the patch is committed to the local base instead so the
        client keeps operating on it after the optimistic TTL.
        """
        if not patch:
            return True
        if self._model.apply(build_local_update(section, dict(patch))):
            self._notify()

        path = self.path_for(section)
        try:
            await self._store.merge(path, dict(patch))
        except StoreError as exc:
            _logger.warning("Merge to %s failed: %s", path, exc)
            if self._model.apply(build_unsynced_update(section, dict(patch))):
                self._notify()
            return False
        return True

    def _on_remote(self, section: StateSection, value: Any) -> None:
        update = build_remote_update(section, value)
        if update is None:
            _logger.debug("Ignoring empty or malformed %s group", section.value)
            return
        if self._model.apply(update):
            self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()
