"""Remote store ingestion.

Translates raw key-group values delivered by a store subscription into
normalized state updates.
"""

from __future__ import annotations

from typing import Any

from pydrone.ingestion.normalize import section_patch
from pydrone.state.events import StateSection, StateUpdate, UpdateSource


def build_remote_update(section: StateSection, value: Any) -> StateUpdate | None:
    """Build a remote update from a subscription value.

    Absent or malformed groups yield ``None``: the local model keeps its
    previous values.
    """
    patch = section_patch(section, value)
    if not patch:
        return None
    return StateUpdate(section=section, source=UpdateSource.REMOTE, data=patch)


def build_local_update(section: StateSection, patch: dict[str, Any]) -> StateUpdate:
    """Build an optimistic update for a locally originated patch."""
    return StateUpdate(section=section, source=UpdateSource.OPTIMISTIC, data=dict(patch))


def build_unsynced_update(section: StateSection, patch: dict[str, Any]) -> StateUpdate:
    """Build an update that commits *patch* locally after a failed store write."""
    return StateUpdate(section=section, source=UpdateSource.LOCAL, data=dict(patch))
