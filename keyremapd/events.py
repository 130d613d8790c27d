"""Input events, how they are classified, and the key sequences a combo produces."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Protocol

from .config import KeyCombo
from .keys import WHEEL_DOWN, WHEEL_UP


class EventType(IntEnum):
    """Event types of the Linux input subsystem."""

    SYNCHRONIZATION = 0
    KEY = 1
    RELATIVE = 2
    ABSOLUTE = 3
    MISC = 4
    SWITCH = 5
    LED = 17
    SOUND = 18
    REPEAT = 20
    FORCEFEEDBACK = 21
    POWER = 22
    FORCEFEEDBACKSTATUS = 23


class RelAxis(IntEnum):
    """Relative axis codes of the Linux input subsystem."""

    REL_X = 0
    REL_Y = 1
    REL_Z = 2
    REL_RX = 3
    REL_RY = 4
    REL_RZ = 5
    REL_HWHEEL = 6
    REL_DIAL = 7
    REL_WHEEL = 8
    REL_MISC = 9
    REL_WHEEL_HI_RES = 11
    REL_HWHEEL_HI_RES = 12


@dataclass(frozen=True)
class InputEvent:
    """A single input event: type, code and value."""

    event_type: int
    code: int
    value: int


class EventSink(Protocol):
    def emit(self, events: Sequence[InputEvent]) -> None: ...


_WHEEL_CODES = frozenset({RelAxis.REL_WHEEL, RelAxis.REL_WHEEL_HI_RES})


def _is_wheel(event: InputEvent) -> bool:
    return event.event_type == EventType.RELATIVE and event.code in _WHEEL_CODES


def should_passthrough(event: InputEvent) -> bool:
    """Tell whether an event bypasses remapping (everything but keys and the wheel)."""
    if event.event_type == EventType.KEY:
        return False
    if event.event_type == EventType.RELATIVE:
        return event.code not in _WHEEL_CODES
    return True


def resolve_key(event: InputEvent) -> int:
    """Return the key code an event stands for; wheel movement maps to pseudo keys."""
    if _is_wheel(event):
        return WHEEL_UP if event.value > 0 else WHEEL_DOWN
    return event.code


def resolve_value(event: InputEvent) -> int:
    """Return the key value of an event; wheel movement always counts as a press."""
    if _is_wheel(event):
        return 1
    return event.value


def should_skip_event_on_action(event: InputEvent) -> bool:
    """Tell whether a mapped event is a duplicate that should be dropped."""
    return event.event_type == EventType.RELATIVE and event.code == RelAxis.REL_WHEEL_HI_RES


def _extra_held(combo: KeyCombo, held_modifiers: Iterable[int] | None) -> list[int]:
    if not held_modifiers:
        return []
    return [code for code in sorted(held_modifiers) if code not in combo.modifiers]


def _key_events(
    combo: KeyCombo, pressed: bool, press_value: int, held_modifiers: Iterable[int] | None
) -> list[InputEvent]:
    extra = _extra_held(combo, held_modifiers)
    if pressed:
        codes = [*extra, *combo.modifiers, combo.key]
        value = press_value
    else:
        codes = [combo.key, *reversed(combo.modifiers), *extra]
        value = 0
    return [InputEvent(EventType.KEY, code, value) for code in codes]


def build_combo_events(
    combo: KeyCombo, value: int, held_modifiers: Iterable[int] | None
) -> list[InputEvent]:
    """Return the press (value 1) or release (any other value) events of a combo.

    Held modifiers that the combo does not name are pressed before it and
    released after it.
    """
    return _key_events(combo, value == 1, 1, held_modifiers)


def emit_combo(
    output: EventSink, combo: KeyCombo, value: int, held_modifiers: Iterable[int] | None
) -> None:
    """Send a combo to the output: any non-zero value presses with that value, zero releases."""
    for event in _key_events(combo, value != 0, value, held_modifiers):
        output.emit([event])