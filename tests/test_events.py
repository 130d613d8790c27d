import pytest

from keyremapd.config import KeyCombo
from keyremapd.events import (
    EventType,
    InputEvent,
    RelAxis,
    build_combo_events,
    emit_combo,
    resolve_key,
    resolve_value,
    should_passthrough,
    should_skip_event_on_action,
)
from keyremapd.keys import Key


class RecordingOutput:
    def __init__(self):
        self.calls = []

    def emit(self, events):
        self.calls.append(list(events))

    @property
    def events(self):
        return [event for call in self.calls for event in call]


def key(code, value):
    return InputEvent(EventType.KEY, code, value)


CTRL_C = KeyCombo((Key.KEY_LEFTCTRL,), Key.KEY_C)
CTRL_SHIFT_T = KeyCombo((Key.KEY_LEFTCTRL, Key.KEY_LEFTSHIFT), Key.KEY_T)


@pytest.mark.parametrize(
    "event, expected",
    [
        (InputEvent(EventType.KEY, Key.KEY_A, 1), False),
        (InputEvent(EventType.RELATIVE, RelAxis.REL_WHEEL, 1), False),
        (InputEvent(EventType.RELATIVE, RelAxis.REL_WHEEL_HI_RES, 120), False),
        (InputEvent(EventType.RELATIVE, RelAxis.REL_X, 5), True),
        (InputEvent(EventType.RELATIVE, RelAxis.REL_HWHEEL, 1), True),
        (InputEvent(EventType.ABSOLUTE, 0, 10), True),
        (InputEvent(EventType.SYNCHRONIZATION, 0, 0), True),
    ],
)
def test_should_passthrough(event, expected):
    assert should_passthrough(event) is expected


@pytest.mark.parametrize("axis", [RelAxis.REL_WHEEL, RelAxis.REL_WHEEL_HI_RES])
def test_wheel_resolves_to_pseudo_keys(axis):
    assert resolve_key(InputEvent(EventType.RELATIVE, axis, 1)) == Key.WHEEL_UP
    assert resolve_key(InputEvent(EventType.RELATIVE, axis, -1)) == Key.WHEEL_DOWN
    assert resolve_key(InputEvent(EventType.RELATIVE, axis, 0)) == Key.WHEEL_DOWN


def test_key_event_resolves_to_its_code_and_value():
    event = InputEvent(EventType.KEY, Key.KEY_Q, 2)
    assert resolve_key(event) == Key.KEY_Q
    assert resolve_value(event) == 2


def test_wheel_value_is_always_a_press():
    assert resolve_value(InputEvent(EventType.RELATIVE, RelAxis.REL_WHEEL, -3)) == 1
    assert resolve_value(InputEvent(EventType.RELATIVE, RelAxis.REL_WHEEL_HI_RES, 240)) == 1


def test_non_wheel_relative_event_keeps_code_and_value():
    event = InputEvent(EventType.RELATIVE, RelAxis.REL_X, -7)
    assert resolve_key(event) == RelAxis.REL_X
    assert resolve_value(event) == -7


@pytest.mark.parametrize(
    "event, expected",
    [
        (InputEvent(EventType.RELATIVE, RelAxis.REL_WHEEL_HI_RES, 120), True),
        (InputEvent(EventType.RELATIVE, RelAxis.REL_WHEEL, 1), False),
        (InputEvent(EventType.KEY, RelAxis.REL_WHEEL_HI_RES, 1), False),
    ],
)
def test_should_skip_event_on_action(event, expected):
    assert should_skip_event_on_action(event) is expected


def test_build_press_orders_modifiers_before_key():
    events = build_combo_events(CTRL_SHIFT_T, 1, None)
    assert events == [
        key(Key.KEY_LEFTCTRL, 1),
        key(Key.KEY_LEFTSHIFT, 1),
        key(Key.KEY_T, 1),
    ]


def test_build_release_reverses_press():
    press = build_combo_events(CTRL_SHIFT_T, 1, None)
    release = build_combo_events(CTRL_SHIFT_T, 0, None)
    assert [e.code for e in release] == [e.code for e in reversed(press)]
    assert all(e.value == 0 for e in release)


def test_build_adds_extra_held_modifiers_around_combo():
    held = {Key.KEY_LEFTALT, Key.KEY_LEFTCTRL}
    press = build_combo_events(CTRL_C, 1, held)
    assert press == [key(Key.KEY_LEFTALT, 1), key(Key.KEY_LEFTCTRL, 1), key(Key.KEY_C, 1)]
    release = build_combo_events(CTRL_C, 0, held)
    assert release == [key(Key.KEY_C, 0), key(Key.KEY_LEFTCTRL, 0), key(Key.KEY_LEFTALT, 0)]


def test_build_treats_repeat_as_release():
    assert build_combo_events(CTRL_C, 2, None) == build_combo_events(CTRL_C, 0, None)


def test_emit_combo_sends_one_event_per_call():
    output = RecordingOutput()
    emit_combo(output, CTRL_C, 1, None)
    assert output.calls == [[key(Key.KEY_LEFTCTRL, 1)], [key(Key.KEY_C, 1)]]


def test_emit_combo_repeat_keeps_value():
    output = RecordingOutput()
    emit_combo(output, CTRL_C, 2, {Key.KEY_RIGHTSHIFT})
    assert output.events == [
        key(Key.KEY_RIGHTSHIFT, 2),
        key(Key.KEY_LEFTCTRL, 2),
        key(Key.KEY_C, 2),
    ]


def test_emit_combo_release_matches_built_release():
    output = RecordingOutput()
    held = {Key.KEY_LEFTALT}
    emit_combo(output, CTRL_SHIFT_T, 0, held)
    assert output.events == build_combo_events(CTRL_SHIFT_T, 0, held)