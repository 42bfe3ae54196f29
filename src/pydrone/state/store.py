"""Telemetry model: the local projection of the shared vehicle.

This is the only component allowed to merge state updates. Each key group
keeps two layers:

* the last confirmed snapshot (``sections``): remote values, plus local
  changes whose store write failed
* a pending local optimistic overlay (``optimistic``)

The visible :class:`VehicleState` is always ``reconcile(base, overlay)``
normalized through :meth:`VehicleState.apply_partial`.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pydrone.models.control import CAMERA_VIEW_FIELD, CameraView
from pydrone.models.telemetry import CONTROL_FIELDS, TELEMETRY_FIELDS, VehicleState
from pydrone.state.events import StateSection, StateUpdate, UpdateSource
from pydrone.state.policy import confirmed_keys, is_expired, reconcile

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SectionSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data: dict[str, Any] = Field(default_factory=dict)
    observed_at: datetime | None = None


class OptimisticOverlay(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data: dict[str, Any]
    applied_at: datetime
    expires_at: datetime


def default_payloads(
    state: VehicleState | None = None,
    camera_view: CameraView = CameraView.SIDE_BY_SIDE,
) -> dict[StateSection, dict[str, Any]]:
    """Store payload of every key group for *state* (defaults when omitted)."""
    state = state or VehicleState()
    return {
        StateSection.TELEMETRY: state.group_payload(TELEMETRY_FIELDS),
        StateSection.CONTROLS: state.group_payload(CONTROL_FIELDS),
        StateSection.CAMERA_VIEW: {CAMERA_VIEW_FIELD: camera_view.value},
    }


class TelemetryModel:
    """In-memory vehicle state with optimistic local updates.

    Deterministic: given the same sequence of :class:`StateUpdate` events and
    clock readings it produces the same states. Applying the same remote
    snapshot twice leaves the state unchanged after the first application.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        optimistic_ttl: timedelta = timedelta(seconds=5),
        initial: VehicleState | None = None,
        camera_view: CameraView = CameraView.SIDE_BY_SIDE,
    ) -> None:
        self._clock = clock
        self._optimistic_ttl = optimistic_ttl
        self._state = initial or VehicleState()
        self._camera_view = camera_view
        self._sections: dict[StateSection, SectionSnapshot] = {
            section: SectionSnapshot(data=payload)
            for section, payload in default_payloads(self._state, camera_view).items()
        }
        self._optimistic: dict[StateSection, OptimisticOverlay] = {}

    @property
    def state(self) -> VehicleState:
        """Current merged vehicle state (overlay included)."""
        if self._optimistic:
            self._refresh(self._clock())
        return self._state

    @property
    def camera_view(self) -> CameraView:
        if self._optimistic:
            self._refresh(self._clock())
        return self._camera_view

    def apply(self, update: StateUpdate) -> bool:
        """Apply a normalized update. Returns whether the visible state changed."""
        now = self._clock()

        if update.source == UpdateSource.OPTIMISTIC:
            overlay = self._optimistic.get(update.section)
            data = dict(overlay.data) if overlay is not None else {}
            data.update(copy.deepcopy(update.data))
            self._optimistic[update.section] = OptimisticOverlay(
                data=data,
                applied_at=update.observed_at,
                expires_at=now + self._optimistic_ttl,
            )
            return self._refresh(now)

        snapshot = self._sections[update.section]
        snapshot.data.update(copy.deepcopy(update.data))
        if update.source == UpdateSource.REMOTE:
            snapshot.observed_at = update.observed_at

        # The echo of our own write (or a local commit after a failed write)
        # confirms the matching overlay keys. Keys the update disagrees with
        # stay until confirmed or expired.
        overlay = self._optimistic.get(update.section)
        if overlay is not None:
            for key in confirmed_keys(overlay.data, update.data):
                overlay.data.pop(key, None)
            if not overlay.data:
                self._optimistic.pop(update.section, None)

        return self._refresh(now)

    def refresh(self) -> bool:
        """Drop expired overlays. Returns whether the visible state changed."""
        return self._refresh(self._clock())

    def get_section(self, section: StateSection) -> dict[str, Any]:
        """Merged view of one key group (base + live overlay)."""
        self._expire(self._clock())
        overlay = self._optimistic.get(section)
        return reconcile(self._sections[section].data, overlay.data if overlay is not None else None)

    def get_base(self, section: StateSection) -> dict[str, Any]:
        """Last confirmed remote payload for one key group."""
        return copy.deepcopy(self._sections[section].data)

    def get_pending(self, section: StateSection) -> dict[str, Any]:
        """Unconfirmed local changes for one key group."""
        overlay = self._optimistic.get(section)
        return copy.deepcopy(overlay.data) if overlay is not None else {}

    def last_remote_at(self, section: StateSection) -> datetime | None:
        """When the store last delivered this key group, if ever."""
        return self._sections[section].observed_at

    def _expire(self, now: datetime) -> None:
        for section, overlay in list(self._optimistic.items()):
            if is_expired(now, overlay.expires_at):
                self._optimistic.pop(section, None)

    def _refresh(self, now: datetime) -> bool:
        self._expire(now)
        merged: dict[str, Any] = {}
        for section in (StateSection.TELEMETRY, StateSection.CONTROLS):
            overlay = self._optimistic.get(section)
            merged.update(reconcile(self._sections[section].data, overlay.data if overlay is not None else None))
        state = self._state.apply_partial(merged)

        view_overlay = self._optimistic.get(StateSection.CAMERA_VIEW)
        view_data = reconcile(
            self._sections[StateSection.CAMERA_VIEW].data,
            view_overlay.data if view_overlay is not None else None,
        )
        camera_view = self._camera_view
        raw_view = view_data.get(CAMERA_VIEW_FIELD)
        if raw_view is not None:
            try:
                camera_view = CameraView(raw_view)
            except ValueError:
                _logger.debug("Ignoring unknown camera view %r", raw_view)

        changed = state != self._state or camera_view != self._camera_view
        self._state = state
        self._camera_view = camera_view
        return changed
