"""Replicated alert log and the low-battery edge detector."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pydrone._constants import LOW_BATTERY_THRESHOLD
from pydrone._store import StoreClient, Unsubscribe
from pydrone.exceptions import StoreError
from pydrone.ingestion.normalize import parse_alert_list
from pydrone.models.alert import AlertEntry, AlertType

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AlertLog:
    """Append-only alert list shared through the store.

    The store has no append primitive, so :meth:`append` writes the whole
    list built from the local cache. Two clients appending at the same time
    race and the later write wins; the losing entry disappears from every
    client once the winning list is echoed back.

    Entries appended here stay pending until a remote list containing their
    id arrives. A stale echo of an earlier write therefore cannot drop a
    newer local entry before the next append rewrites the list.
    """

    def __init__(
        self,
        store: StoreClient,
        *,
        path: str,
        origin: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._path = path
        self._origin = origin
        self._clock = clock
        self._entries: list[AlertEntry] = []
        self._pending: dict[int, AlertEntry] = {}
        self._unsubscribe: Unsubscribe | None = None

    @property
    def entries(self) -> tuple[AlertEntry, ...]:
        return tuple(self._entries)

    @property
    def pending(self) -> tuple[AlertEntry, ...]:
        """Local entries not yet seen in a remote list."""
        return tuple(sorted(self._pending.values(), key=lambda entry: entry.id))

    def __len__(self) -> int:
        return len(self._entries)

    def _next_id(self, now: datetime) -> int:
        candidate = int(now.timestamp() * 1000)
        if self._entries:
            candidate = max(candidate, max(entry.id for entry in self._entries) + 1)
        return candidate

    async def append(self, alert_type: AlertType, message: str) -> AlertEntry:
        """Record one alert locally and replicate the full list."""
        now = self._clock()
        entry = AlertEntry(
            id=self._next_id(now),
            type=alert_type,
            message=message,
            timestamp=now,
            origin=self._origin,
        )
        self._entries.append(entry)
        self._pending[entry.id] = entry
        _logger.debug("Alert %s: %s", alert_type.value, message)

        try:
            await self._store.write(self._path, [item.to_store() for item in self._entries])
        except StoreError as exc:
            _logger.warning("Alert log write to %s failed: %s", self._path, exc)
        return entry

    async def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = await self._store.subscribe(self._path, self._on_remote)

    def stop(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        if unsubscribe is not None:
            unsubscribe()

    def _on_remote(self, value: object) -> None:
        entries = parse_alert_list(value)
        if entries is None:
            return
        known = {entry.id for entry in entries}
        for entry_id in known.intersection(self._pending):
            del self._pending[entry_id]
        unconfirmed = sorted(self._pending.values(), key=lambda entry: entry.id)
        if unconfirmed:
            _logger.debug("Keeping %d unconfirmed alert(s) over remote list", len(unconfirmed))
        self._entries = entries + unconfirmed


class BatteryWatch:
    """Edge detector for downward crossings of the low-battery threshold.

    :meth:`observe` returns ``True`` exactly once per crossing. It re-arms
    when the level is back at or above the threshold.
    """

    def __init__(self, threshold: float = LOW_BATTERY_THRESHOLD) -> None:
        self._threshold = threshold
        self._below = False

    @property
    def threshold(self) -> float:
        return self._threshold

    def observe(self, level: float) -> bool:
        if level >= self._threshold:
            self._below = False
            return False
        if self._below:
            return False
        self._below = True
        return True
