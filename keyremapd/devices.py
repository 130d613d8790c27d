"""Physical input devices under /dev/input and virtual output devices through uinput."""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import re
import struct
from collections.abc import AsyncIterator, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .events import EventSink, EventType, InputEvent, RelAxis
from .keys import Key

logger = logging.getLogger(__name__)

INPUT_DIR = "/dev/input"
UINPUT_PATH = "/dev/uinput"
ABS_MT_POSITION_X = 0x35

_EVENT_FORMAT = struct.Struct("llHHi")
_USER_DEV_FORMAT = struct.Struct("=80s4HI1024x")
_NAME_LENGTH = 256
_EV_BYTES = 4
_KEY_BYTES = 96
_REL_BYTES = 2
_ABS_BYTES = 8

_IOC_NONE = 0
_IOC_WRITE = 1
_IOC_READ = 2


def _ioc(direction: int, kind: str, number: int, size: int) -> int:
    return (direction << 30) | (size << 16) | (ord(kind) << 8) | number


def _eviocgname(length: int) -> int:
    return _ioc(_IOC_READ, "E", 0x06, length)


def _eviocgbit(event_type: int, length: int) -> int:
    return _ioc(_IOC_READ, "E", 0x20 + event_type, length)


EVIOCGRAB = _ioc(_IOC_WRITE, "E", 0x90, 4)
UI_SET_EVBIT = _ioc(_IOC_WRITE, "U", 100, 4)
UI_SET_KEYBIT = _ioc(_IOC_WRITE, "U", 101, 4)
UI_SET_RELBIT = _ioc(_IOC_WRITE, "U", 102, 4)
UI_DEV_CREATE = _ioc(_IOC_NONE, "U", 1, 0)
UI_DEV_DESTROY = _ioc(_IOC_NONE, "U", 2, 0)

_BUS_USB = 0x03
_VENDOR = 0x1234
_PRODUCT = 0x5678
_VERSION = 0x111

_MOUSE_BUTTONS = frozenset(
    {Key.BTN_LEFT, Key.BTN_RIGHT, Key.BTN_MIDDLE, Key.BTN_SIDE, Key.BTN_EXTRA}
)

KEYBOARD_KEYS: tuple[Key, ...] = (
    *(Key[f"KEY_{char}"] for char in "ABCDEFGHIJKLMNOPQRSTUVWXYZ1234567890"),
    Key.KEY_ENTER,
    Key.KEY_ESC,
    Key.KEY_BACKSPACE,
    Key.KEY_TAB,
    Key.KEY_SPACE,
    Key.KEY_LEFTCTRL,
    Key.KEY_LEFTSHIFT,
    Key.KEY_LEFTALT,
    Key.KEY_RIGHTCTRL,
    Key.KEY_RIGHTSHIFT,
    Key.KEY_RIGHTALT,
    Key.KEY_LEFTMETA,
    *(Key[f"KEY_F{number}"] for number in range(1, 25)),
    Key.KEY_UP,
    Key.KEY_DOWN,
    Key.KEY_LEFT,
    Key.KEY_RIGHT,
    Key.KEY_HOME,
    Key.KEY_END,
    Key.KEY_DELETE,
    Key.KEY_INSERT,
    Key.KEY_PAGEUP,
    Key.KEY_PAGEDOWN,
    Key.KEY_CAPSLOCK,
    Key.KEY_MINUS,
    Key.KEY_EQUAL,
    Key.KEY_LEFTBRACE,
    Key.KEY_RIGHTBRACE,
    Key.KEY_BACKSLASH,
    Key.KEY_SEMICOLON,
    Key.KEY_APOSTROPHE,
    Key.KEY_GRAVE,
    Key.KEY_COMMA,
    Key.KEY_DOT,
    Key.KEY_SLASH,
    Key.KEY_PLAYPAUSE,
    Key.KEY_NEXTSONG,
    Key.KEY_PREVIOUSSONG,
    Key.KEY_VOLUMEUP,
    Key.KEY_VOLUMEDOWN,
    Key.KEY_MUTE,
    *(Key[f"KEY_KP{number}"] for number in range(10)),
    Key.KEY_KPASTERISK,
    Key.KEY_KPPLUS,
    Key.KEY_KPMINUS,
    Key.KEY_KPDOT,
    Key.KEY_KPENTER,
    Key.KEY_KPSLASH,
    Key.KEY_NUMLOCK,
    Key.KEY_SCROLLLOCK,
    Key.KEY_RIGHTMETA,
)

MOUSE_BUTTONS: tuple[Key, ...] = (
    Key.BTN_LEFT,
    Key.BTN_RIGHT,
    Key.BTN_MIDDLE,
    Key.BTN_SIDE,
    Key.BTN_EXTRA,
)

MOUSE_AXES: tuple[RelAxis, ...] = (
    RelAxis.REL_X,
    RelAxis.REL_Y,
    RelAxis.REL_WHEEL,
    RelAxis.REL_HWHEEL,
    RelAxis.REL_WHEEL_HI_RES,
    RelAxis.REL_HWHEEL_HI_RES,
)


class DeviceKind(Enum):
    KEYBOARD = "keyboard"
    MOUSE = "mouse"


def _query_bits(fd: int, event_type: int, size: int) -> frozenset[int]:
    buffer = bytearray(size)
    fcntl.ioctl(fd, _eviocgbit(event_type, size), buffer, True)
    return frozenset(
        index * 8 + bit
        for index, byte in enumerate(buffer)
        for bit in range(8)
        if byte >> bit & 1
    )


def _query_name(fd: int) -> str | None:
    buffer = bytearray(_NAME_LENGTH)
    try:
        fcntl.ioctl(fd, _eviocgname(_NAME_LENGTH), buffer, True)
    except OSError:
        return None
    return bytes(buffer).split(b"\0", 1)[0].decode("utf-8", errors="replace")


@dataclass(eq=False)
class InputDevice:
    """An input device with the key, relative and absolute codes it supports.

    A capability set is None when the device does not report that event type.
    """

    name: str | None
    keys: frozenset[int] | None = None
    relative_axes: frozenset[int] | None = None
    absolute_axes: frozenset[int] | None = None
    path: str | None = None
    fd: int | None = None

    @classmethod
    def open(cls, path: str | os.PathLike[str]) -> InputDevice:
        """Open an event device node and read its name and capabilities."""
        fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
        try:
            types = _query_bits(fd, 0, _EV_BYTES)
            keys = _query_bits(fd, EventType.KEY, _KEY_BYTES) if EventType.KEY in types else None
            rel = (
                _query_bits(fd, EventType.RELATIVE, _REL_BYTES)
                if EventType.RELATIVE in types
                else None
            )
            absolute = (
                _query_bits(fd, EventType.ABSOLUTE, _ABS_BYTES)
                if EventType.ABSOLUTE in types
                else None
            )
            name = _query_name(fd)
        except OSError:
            os.close(fd)
            raise
        return cls(
            name=name,
            keys=keys,
            relative_axes=rel,
            absolute_axes=absolute,
            path=os.fspath(path),
            fd=fd,
        )

    def _require_fd(self) -> int:
        if self.fd is None:
            raise ValueError("device is closed")
        return self.fd

    def grab(self) -> None:
        """Take the device exclusively, so its events reach no other reader."""
        fcntl.ioctl(self._require_fd(), EVIOCGRAB, 1)

    async def events(self) -> AsyncIterator[InputEvent]:
        """Yield events as the device produces them, until it reports end of file."""
        fd = self._require_fd()
        os.set_blocking(fd, False)
        loop = asyncio.get_running_loop()
        leftover = b""
        while True:
            ready = loop.create_future()
            loop.add_reader(fd, lambda: ready.done() or ready.set_result(None))
            try:
                await ready
            finally:
                loop.remove_reader(fd)
            try:
                data = os.read(fd, _EVENT_FORMAT.size * 64)
            except BlockingIOError:
                continue
            if not data:
                return
            data = leftover + data
            whole = len(data) - len(data) % _EVENT_FORMAT.size
            leftover = data[whole:]
            for _sec, _usec, event_type, code, value in _EVENT_FORMAT.iter_unpack(data[:whole]):
                yield InputEvent(event_type, code, value)

    def close(self) -> None:
        """Release the device; closing also ends a grab."""
        if self.fd is not None:
            os.close(self.fd)
            self.fd = None

    def __enter__(self) -> InputDevice:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class VirtualDevice:
    """A uinput device that can emit the given keys and relative axes."""

    def __init__(
        self,
        name: str,
        keys: Iterable[int],
        relative_axes: Iterable[int] = (),
        path: str | os.PathLike[str] = UINPUT_PATH,
    ) -> None:
        self.name = name
        fd = os.open(path, os.O_WRONLY | os.O_NONBLOCK)
        try:
            fcntl.ioctl(fd, UI_SET_EVBIT, int(EventType.KEY))
            for key in keys:
                fcntl.ioctl(fd, UI_SET_KEYBIT, int(key))
            axes = list(relative_axes)
            if axes:
                fcntl.ioctl(fd, UI_SET_EVBIT, int(EventType.RELATIVE))
                for axis in axes:
                    fcntl.ioctl(fd, UI_SET_RELBIT, int(axis))
            header = _USER_DEV_FORMAT.pack(
                name.encode("utf-8")[:79], _BUS_USB, _VENDOR, _PRODUCT, _VERSION, 0
            )
            os.write(fd, header)
            fcntl.ioctl(fd, UI_DEV_CREATE)
        except OSError:
            os.close(fd)
            raise
        self._fd: int | None = fd

    def emit(self, events: Sequence[InputEvent]) -> None:
        """Write the events followed by a synchronisation report."""
        if self._fd is None:
            raise ValueError("device is closed")
        packed = [
            _EVENT_FORMAT.pack(0, 0, event.event_type, event.code, event.value)
            for event in events
        ]
        packed.append(_EVENT_FORMAT.pack(0, 0, EventType.SYNCHRONIZATION, 0, 0))
        os.write(self._fd, b"".join(packed))

    def close(self) -> None:
        """Remove the virtual device."""
        if self._fd is None:
            return
        try:
            fcntl.ioctl(self._fd, UI_DEV_DESTROY)
        finally:
            os.close(self._fd)
            self._fd = None

    def __enter__(self) -> VirtualDevice:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def is_mouse_event(event: InputEvent) -> bool:
    """Tell whether an event belongs on the virtual mouse rather than the keyboard."""
    if event.event_type == EventType.RELATIVE:
        return True
    if event.event_type == EventType.KEY:
        return event.code in _MOUSE_BUTTONS
    return False


class VirtualOutput:
    """A virtual keyboard and mouse; events go to whichever one they belong to."""

    def __init__(self, keyboard: EventSink | None = None, mouse: EventSink | None = None) -> None:
        self.keyboard = keyboard if keyboard is not None else VirtualDevice(
            "Keyremapd Virtual Keyboard", KEYBOARD_KEYS
        )
        self.mouse = mouse if mouse is not None else VirtualDevice(
            "Keyremapd Virtual Mouse", MOUSE_BUTTONS, MOUSE_AXES
        )

    def emit(self, events: Sequence[InputEvent]) -> None:
        """Split the events between keyboard and mouse, keeping their order."""
        keyboard_events = [event for event in events if not is_mouse_event(event)]
        mouse_events = [event for event in events if is_mouse_event(event)]
        if keyboard_events:
            self.keyboard.emit(keyboard_events)
        if mouse_events:
            self.mouse.emit(mouse_events)

    def close(self) -> None:
        """Close both virtual devices where they can be closed."""
        for device in (self.keyboard, self.mouse):
            closer = getattr(device, "close", None)
            if closer is not None:
                closer()

    def __enter__(self) -> VirtualOutput:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def device_kind(device: InputDevice) -> DeviceKind:
    """Devices with a horizontal relative axis are mice; everything else is a keyboard."""
    if device.relative_axes is not None and RelAxis.REL_X in device.relative_axes:
        return DeviceKind.MOUSE
    return DeviceKind.KEYBOARD


def should_grab(device: InputDevice, device_names: Sequence[str]) -> bool:
    """Tell whether a device matches the configured names and is a keyboard or mouse."""
    name = (device.name or "").lower()
    if device_names and not any(wanted.lower() in name for wanted in device_names):
        return False
    if device.keys is None:
        return False
    if Key.KEY_A not in device.keys and Key.BTN_LEFT not in device.keys:
        return False
    if device.absolute_axes is not None and ABS_MT_POSITION_X in device.absolute_axes:
        logger.debug("Skipping touchpad: %s", device.name or "unknown")
        return False
    return True


def _node_number(path: Path) -> tuple[int, str]:
    match = re.search(r"(\d+)$", path.name)
    return (int(match.group(1)) if match else -1, path.name)


def list_devices() -> list[InputDevice]:
    """Open every event device that can be opened."""
    devices = []
    for path in sorted(Path(INPUT_DIR).glob("event*"), key=_node_number):
        try:
            devices.append(InputDevice.open(path))
        except OSError as exc:
            logger.debug("Cannot open %s: %s", path, exc)
    return devices


def grab_devices(
    device_names: Sequence[str],
) -> tuple[dict[str, InputDevice], dict[str, InputDevice]]:
    """Grab the matching devices, split into keyboards and mice keyed by name."""
    keyboards: dict[str, InputDevice] = {}
    mice: dict[str, InputDevice] = {}
    for device in list_devices():
        if not should_grab(device, device_names):
            device.close()
            continue
        name = device.name or "unknown"
        kind = device_kind(device)
        try:
            device.grab()
        except OSError as exc:
            logger.warning("Failed to grab %s: %s", name, exc)
            device.close()
            continue
        logger.debug("Grabbed device: %s", name)
        target = keyboards if kind is DeviceKind.KEYBOARD else mice
        previous = target.pop(name, None)
        if previous is not None:
            previous.close()
        target[name] = device
    return keyboards, mice