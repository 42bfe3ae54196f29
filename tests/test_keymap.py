from __future__ import annotations

import pytest

from pydrone.keymap import KEY_BINDINGS, KeyEvent, is_text_input, resolve_key
from pydrone.models.control import Direction, IntentKind, ThrottleStep


@pytest.mark.parametrize(
    ("code", "direction"),
    [
        ("ArrowUp", Direction.FORWARD),
        ("ArrowDown", Direction.BACKWARD),
        ("ArrowLeft", Direction.LEFT),
        ("ArrowRight", Direction.RIGHT),
    ],
)
def test_arrow_keys_map_to_directions(code: str, direction: Direction) -> None:
    binding = resolve_key(KeyEvent(code=code))
    assert binding is not None
    assert binding.kind == IntentKind.NUDGE
    assert binding.direction == direction


def test_each_throttle_step_has_letter_and_numpad_synonyms() -> None:
    up = {code for code, binding in KEY_BINDINGS.items() if binding.step == ThrottleStep.UP}
    down = {code for code, binding in KEY_BINDINGS.items() if binding.step == ThrottleStep.DOWN}

    assert up == {"KeyW", "Numpad8"}
    assert down == {"KeyS", "Numpad2"}


def test_single_global_reset_key() -> None:
    resets = [code for code, binding in KEY_BINDINGS.items() if binding.kind == IntentKind.RESET_ALL]
    assert resets == ["Space"]


def test_text_input_targets_suppress_bindings() -> None:
    assert is_text_input(KeyEvent(code="KeyW", target_tag="input"))
    assert is_text_input(KeyEvent(code="KeyW", target_tag=" Select "))
    assert is_text_input(KeyEvent(code="KeyW", editable=True))
    assert not is_text_input(KeyEvent(code="KeyW", target_tag="canvas"))
    assert resolve_key(KeyEvent(code="ArrowUp", target_tag="textarea")) is None


def test_unbound_key_resolves_to_none() -> None:
    assert resolve_key(KeyEvent(code="KeyZ")) is None
