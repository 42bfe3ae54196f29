"""Keyboard bindings for operator intents.

Bindings are grouped by intent, not by raw key: four arrow keys for
direction, a letter and a numeric-pad synonym for each throttle step, and
one key for the global reset.
"""

from __future__ import annotations

import dataclasses

from pydrone.models.control import Direction, IntentKind, ThrottleStep

_TEXT_INPUT_TAGS: frozenset[str] = frozenset({"input", "textarea", "select"})


@dataclasses.dataclass(frozen=True)
class KeyEvent:
    """A key press as reported by the presentation layer."""

    code: str
    key: str = ""
    target_tag: str = ""
    editable: bool = False


@dataclasses.dataclass(frozen=True)
class KeyBinding:
    kind: IntentKind
    direction: Direction | None = None
    step: ThrottleStep | None = None


@dataclasses.dataclass(frozen=True)
class KeyResult:
    """Outcome of handling a key press.

    ``prevent_default`` asks the presentation layer to suppress the key's
    default action (page scrolling for arrows and space).
    """

    handled: bool
    prevent_default: bool = False


KEY_BINDINGS: dict[str, KeyBinding] = {
    "ArrowUp": KeyBinding(IntentKind.NUDGE, direction=Direction.FORWARD),
    "ArrowDown": KeyBinding(IntentKind.NUDGE, direction=Direction.BACKWARD),
    "ArrowLeft": KeyBinding(IntentKind.NUDGE, direction=Direction.LEFT),
    "ArrowRight": KeyBinding(IntentKind.NUDGE, direction=Direction.RIGHT),
    "KeyW": KeyBinding(IntentKind.THROTTLE_STEP, step=ThrottleStep.UP),
    "Numpad8": KeyBinding(IntentKind.THROTTLE_STEP, step=ThrottleStep.UP),
    "KeyS": KeyBinding(IntentKind.THROTTLE_STEP, step=ThrottleStep.DOWN),
    "Numpad2": KeyBinding(IntentKind.THROTTLE_STEP, step=ThrottleStep.DOWN),
    "Space": KeyBinding(IntentKind.RESET_ALL),
}


def is_text_input(event: KeyEvent) -> bool:
    """Whether focus is inside a text-input-like control."""
    return event.editable or event.target_tag.strip().lower() in _TEXT_INPUT_TAGS


def resolve_key(event: KeyEvent) -> KeyBinding | None:
    if is_text_input(event):
        return None
    return KEY_BINDINGS.get(event.code)
