"""Base model and enum for shared-store payloads.

Every store-facing model inherits from :class:`DroneBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase store keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips sentinel values
  (``None``, ``""``, NaN, infinities) so the field default is used.

Mode enums inherit from :class:`DroneEnum` which matches values
case-insensitively, so ``"stabilize"`` written by another client still
parses as ``FlightMode.STABILIZE``.
"""

from __future__ import annotations

import enum
import math
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

_SENTINELS = frozenset({"", "--", "NaN", "nan"})


def is_sentinel(value: Any) -> bool:
    """Return ``True`` when *value* means "not available"."""
    if value is None:
        return True
    if isinstance(value, str) and value.strip() in _SENTINELS:
        return True
    return isinstance(value, float) and not math.isfinite(value)


class DroneEnum(enum.StrEnum):
    """Base for string enums carried in store payloads."""

    @classmethod
    def _missing_(cls, value: object) -> DroneEnum | None:
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for member in cls:
            if member.value.lower() == wanted or member.name.lower() == wanted:
                return member
        return None


class DroneBaseModel(BaseModel):
    """Base for models exchanged through the shared store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_sentinels(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return {key: value for key, value in values.items() if not is_sentinel(value)}

    def to_store(self) -> dict[str, Any]:
        """Dump with camelCase keys and JSON-compatible values."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
