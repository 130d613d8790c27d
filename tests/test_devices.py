import asyncio
import os
import struct
from unittest.mock import patch

import pytest

from keyremapd.devices import (
    ABS_MT_POSITION_X,
    DeviceKind,
    InputDevice,
    VirtualDevice,
    VirtualOutput,
    device_kind,
    is_mouse_event,
    should_grab,
)
from keyremapd.events import EventType, InputEvent, RelAxis
from keyremapd.keys import Key

EVENT = struct.Struct("llHHi")


class RecordingSink:
    def __init__(self):
        self.batches = []

    def emit(self, events):
        self.batches.append(list(events))


def keyboard(name="USB Keyboard", **kwargs):
    return InputDevice(name=name, keys=frozenset({Key.KEY_A, Key.KEY_B}), **kwargs)


@pytest.mark.parametrize(
    "event, expected",
    [
        (InputEvent(EventType.RELATIVE, RelAxis.REL_X, 3), True),
        (InputEvent(EventType.RELATIVE, RelAxis.REL_WHEEL, 1), True),
        (InputEvent(EventType.KEY, Key.BTN_LEFT, 1), True),
        (InputEvent(EventType.KEY, Key.BTN_EXTRA, 0), True),
        (InputEvent(EventType.KEY, Key.KEY_A, 1), False),
        (InputEvent(EventType.SYNCHRONIZATION, 0, 0), False),
    ],
)
def test_is_mouse_event(event, expected):
    assert is_mouse_event(event) is expected


def test_device_kind_mouse_with_rel_x():
    mouse = InputDevice(
        name="Mouse",
        keys=frozenset({Key.BTN_LEFT}),
        relative_axes=frozenset({RelAxis.REL_X, RelAxis.REL_Y}),
    )
    assert device_kind(mouse) is DeviceKind.MOUSE


def test_device_kind_keyboard_without_rel_x():
    assert device_kind(keyboard()) is DeviceKind.KEYBOARD
    wheel_only = InputDevice(
        name="Knob", keys=frozenset({Key.KEY_A}), relative_axes=frozenset({RelAxis.REL_WHEEL})
    )
    assert device_kind(wheel_only) is DeviceKind.KEYBOARD


def test_should_grab_keyboard_without_filter():
    assert should_grab(keyboard(), []) is True


def test_should_grab_name_filter_is_case_insensitive():
    assert should_grab(keyboard("Some USB KEYBOARD"), ["usb keyboard"]) is True
    assert should_grab(keyboard("Other Device"), ["usb keyboard"]) is False


def test_should_grab_requires_keys():
    assert should_grab(InputDevice(name="Power Button"), []) is False


def test_should_grab_requires_letter_or_left_button():
    device = InputDevice(name="Media", keys=frozenset({Key.KEY_VOLUMEUP}))
    assert should_grab(device, []) is False
    mouse = InputDevice(name="Mouse", keys=frozenset({Key.BTN_LEFT}))
    assert should_grab(mouse, []) is True


def test_should_grab_skips_touchpads():
    touchpad = InputDevice(
        name="Touchpad",
        keys=frozenset({Key.BTN_LEFT}),
        absolute_axes=frozenset({ABS_MT_POSITION_X}),
    )
    assert should_grab(touchpad, []) is False


def test_virtual_output_splits_events():
    kb, mouse = RecordingSink(), RecordingSink()
    output = VirtualOutput(keyboard=kb, mouse=mouse)
    key_a = InputEvent(EventType.KEY, Key.KEY_A, 1)
    move = InputEvent(EventType.RELATIVE, RelAxis.REL_X, 5)
    click = InputEvent(EventType.KEY, Key.BTN_LEFT, 1)
    output.emit([key_a, move, click])
    assert kb.batches == [[key_a]]
    assert mouse.batches == [[move, click]]


def test_virtual_output_skips_empty_batches():
    kb, mouse = RecordingSink(), RecordingSink()
    output = VirtualOutput(keyboard=kb, mouse=mouse)
    output.emit([InputEvent(EventType.KEY, Key.KEY_B, 0)])
    output.emit([])
    assert kb.batches == [[InputEvent(EventType.KEY, Key.KEY_B, 0)]]
    assert mouse.batches == []


def test_virtual_device_writes_header_and_events(tmp_path):
    node = tmp_path / "uinput"
    node.write_bytes(b"")
    with patch("fcntl.ioctl") as ioctl:
        device = VirtualDevice("Test Device", [Key.KEY_A], [RelAxis.REL_X], path=node)
        before = node.stat().st_size
        device.emit([InputEvent(EventType.KEY, Key.KEY_A, 1)])
        device.close()
    data = node.read_bytes()
    assert data.startswith(b"Test Device")
    written = list(EVENT.iter_unpack(data[before:]))
    assert written == [
        (0, 0, EventType.KEY, Key.KEY_A, 1),
        (0, 0, EventType.SYNCHRONIZATION, 0, 0),
    ]
    passed = {call.args[2] for call in ioctl.call_args_list if len(call.args) == 3}
    assert Key.KEY_A in passed
    assert RelAxis.REL_X in passed


def test_virtual_device_emit_after_close_raises(tmp_path):
    node = tmp_path / "uinput"
    node.write_bytes(b"")
    with patch("fcntl.ioctl"):
        device = VirtualDevice("Closed", [Key.KEY_A], path=node)
        device.close()
    with pytest.raises(ValueError):
        device.emit([InputEvent(EventType.KEY, Key.KEY_A, 1)])


def test_input_device_open_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        InputDevice.open(tmp_path / "event99")


def test_input_device_open_regular_file_fails(tmp_path):
    path = tmp_path / "event0"
    path.write_bytes(b"")
    with pytest.raises(OSError):
        InputDevice.open(path)


def test_grab_on_closed_device_raises():
    device = keyboard()
    with pytest.raises(ValueError):
        device.grab()


@pytest.mark.asyncio
async def test_events_reads_from_descriptor():
    read_fd, write_fd = os.pipe()
    os.write(
        write_fd,
        EVENT.pack(0, 0, EventType.KEY, Key.KEY_A, 1)
        + EVENT.pack(0, 0, EventType.SYNCHRONIZATION, 0, 0),
    )
    os.close(write_fd)
    device = InputDevice(name="pipe", fd=read_fd)

    async def collect():
        return [event async for event in device.events()]

    events = await asyncio.wait_for(collect(), 2)
    device.close()
    assert events == [
        InputEvent(EventType.KEY, Key.KEY_A, 1),
        InputEvent(EventType.SYNCHRONIZATION, 0, 0),
    ]
    assert device.fd is None