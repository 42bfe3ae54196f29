"""Normalization helpers.

Centralizes parsing of values written by other clients.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from pydrone.models.alert import AlertEntry
from pydrone.models.control import CAMERA_VIEW_FIELD
from pydrone.models.telemetry import CONTROL_FIELDS, TELEMETRY_FIELDS
from pydrone.state.events import StateSection

_logger = logging.getLogger(__name__)

_SECTION_KEYS: dict[StateSection, frozenset[str]] = {
    StateSection.TELEMETRY: TELEMETRY_FIELDS,
    StateSection.CONTROLS: CONTROL_FIELDS,
    StateSection.CAMERA_VIEW: frozenset({CAMERA_VIEW_FIELD}),
}


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def is_meaningful(value: Any) -> bool:
    """Return True if the value should be included in a state patch."""

    if value is None:
        return False
    if value == "":
        return False
    if isinstance(value, float) and not math.isfinite(value):
        return False
    if value == {}:
        return False
    return bool(value != [])


def prune_patch(data: Any) -> Any:
    """Recursively drop non-meaningful values from a patch structure.

    State merging assumes incoming patches are already pruned.
    """

    if isinstance(data, dict):
        pruned: dict[str, Any] = {}
        for key, value in data.items():
            cleaned = prune_patch(value)
            if is_meaningful(cleaned):
                pruned[key] = cleaned
        return pruned

    if isinstance(data, list):
        items: list[Any] = []
        for item in data:
            cleaned = prune_patch(item)
            if is_meaningful(cleaned):
                items.append(cleaned)
        return items

    return data


def section_patch(section: StateSection, value: Any) -> dict[str, Any] | None:
    """Coerce a remote key-group value into a pruned patch.

    Returns ``None`` when the group is absent or not an object. Keys that
    belong to another group are dropped so one group can never clobber
    another. A bare string is accepted for the camera-view selector.
    """
    if section == StateSection.CAMERA_VIEW and isinstance(value, str):
        value = {CAMERA_VIEW_FIELD: value}
    if not isinstance(value, Mapping):
        return None
    allowed = _SECTION_KEYS[section]
    pruned = prune_patch({str(key): item for key, item in value.items() if str(key) in allowed})
    return pruned if isinstance(pruned, dict) else None


def _alert_items(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        # Realtime databases return sparse arrays as {"0": ..., "2": ...}.
        def _order(key: Any) -> tuple[int, str]:
            number = safe_float(key)
            return (int(number) if number is not None else 0, str(key))

        return [value[key] for key in sorted(value, key=_order)]
    return []


def parse_alert_list(value: Any) -> list[AlertEntry] | None:
    """Parse the replicated alert list, skipping malformed entries.

    Returns ``None`` when the stored value is absent.
    """
    if value is None:
        return None
    entries: list[AlertEntry] = []
    for item in _alert_items(value):
        if not isinstance(item, Mapping):
            continue
        try:
            entries.append(AlertEntry.model_validate(dict(item)))
        except ValidationError:
            _logger.debug("Skipping malformed alert entry: %r", item)
    return entries
