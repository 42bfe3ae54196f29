"""Deterministic reconciliation policy.

This module contains *no* payload parsing. The ingestion boundary is
responsible for producing pruned camelCase patches.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any

# Store round trips may turn 355.0 into 355 or add float noise in the last bit.
_FLOAT_TOLERANCE = 1e-9


def values_equal(left: Any, right: Any) -> bool:
    """Compare two store values, treating ints and floats numerically."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return math.isclose(float(left), float(right), rel_tol=0.0, abs_tol=_FLOAT_TOLERANCE)
    return bool(left == right)


def reconcile(base: Mapping[str, Any], overlay: Mapping[str, Any] | None) -> dict[str, Any]:
    """Merge a pending local overlay over the confirmed remote base.

    Pure: neither input is modified. Overlay keys always win.
    """
    result: dict[str, Any] = copy.deepcopy(dict(base))
    if overlay:
        result.update(copy.deepcopy(dict(overlay)))
    return result


def confirmed_keys(overlay: Mapping[str, Any], remote: Mapping[str, Any]) -> set[str]:
    """Overlay keys whose pending value the remote update now carries.

    These local writes have round-tripped through the store and no longer
    need to mask the base.
    """
    return {key for key, pending in overlay.items() if key in remote and values_equal(pending, remote[key])}


def is_expired(now: datetime, expires_at: datetime) -> bool:
    return now >= expires_at
