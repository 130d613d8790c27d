"""Linux input key codes, key names from configuration, and modifier helpers."""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum

MODIFIER_COUNT = 8
"""Number of modifier combinations: three bits for SHIFT, CTRL and ALT."""


class KeyNameError(ValueError):
    """Raised when a key name in the configuration is not known."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown key name: {name}")
        self.name = name


class Key(IntEnum):
    """Key and button codes as used by the Linux input subsystem."""

    KEY_ESC = 1
    KEY_1 = 2
    KEY_2 = 3
    KEY_3 = 4
    KEY_4 = 5
    KEY_5 = 6
    KEY_6 = 7
    KEY_7 = 8
    KEY_8 = 9
    KEY_9 = 10
    KEY_0 = 11
    KEY_MINUS = 12
    KEY_EQUAL = 13
    KEY_BACKSPACE = 14
    KEY_TAB = 15
    KEY_Q = 16
    KEY_W = 17
    KEY_E = 18
    KEY_R = 19
    KEY_T = 20
    KEY_Y = 21
    KEY_U = 22
    KEY_I = 23
    KEY_O = 24
    KEY_P = 25
    KEY_LEFTBRACE = 26
    KEY_RIGHTBRACE = 27
    KEY_ENTER = 28
    KEY_LEFTCTRL = 29
    KEY_A = 30
    KEY_S = 31
    KEY_D = 32
    KEY_F = 33
    KEY_G = 34
    KEY_H = 35
    KEY_J = 36
    KEY_K = 37
    KEY_L = 38
    KEY_SEMICOLON = 39
    KEY_APOSTROPHE = 40
    KEY_GRAVE = 41
    KEY_LEFTSHIFT = 42
    KEY_BACKSLASH = 43
    KEY_Z = 44
    KEY_X = 45
    KEY_C = 46
    KEY_V = 47
    KEY_B = 48
    KEY_N = 49
    KEY_M = 50
    KEY_COMMA = 51
    KEY_DOT = 52
    KEY_SLASH = 53
    KEY_RIGHTSHIFT = 54
    KEY_KPASTERISK = 55
    KEY_LEFTALT = 56
    KEY_SPACE = 57
    KEY_CAPSLOCK = 58
    KEY_F1 = 59
    KEY_F2 = 60
    KEY_F3 = 61
    KEY_F4 = 62
    KEY_F5 = 63
    KEY_F6 = 64
    KEY_F7 = 65
    KEY_F8 = 66
    KEY_F9 = 67
    KEY_F10 = 68
    KEY_NUMLOCK = 69
    KEY_SCROLLLOCK = 70
    KEY_KP7 = 71
    KEY_KP8 = 72
    KEY_KP9 = 73
    KEY_KPMINUS = 74
    KEY_KP4 = 75
    KEY_KP5 = 76
    KEY_KP6 = 77
    KEY_KPPLUS = 78
    KEY_KP1 = 79
    KEY_KP2 = 80
    KEY_KP3 = 81
    KEY_KP0 = 82
    KEY_KPDOT = 83
    KEY_F11 = 87
    KEY_F12 = 88
    KEY_KPENTER = 96
    KEY_RIGHTCTRL = 97
    KEY_KPSLASH = 98
    KEY_RIGHTALT = 100
    KEY_HOME = 102
    KEY_UP = 103
    KEY_PAGEUP = 104
    KEY_LEFT = 105
    KEY_RIGHT = 106
    KEY_END = 107
    KEY_DOWN = 108
    KEY_PAGEDOWN = 109
    KEY_INSERT = 110
    KEY_DELETE = 111
    KEY_MUTE = 113
    KEY_VOLUMEDOWN = 114
    KEY_VOLUMEUP = 115
    KEY_PAUSE = 119
    KEY_LEFTMETA = 125
    KEY_RIGHTMETA = 126
    KEY_NEXTSONG = 163
    KEY_PLAYPAUSE = 164
    KEY_PREVIOUSSONG = 165
    KEY_F13 = 183
    KEY_F14 = 184
    KEY_F15 = 185
    KEY_F16 = 186
    KEY_F17 = 187
    KEY_F18 = 188
    KEY_F19 = 189
    KEY_F20 = 190
    KEY_F21 = 191
    KEY_F22 = 192
    KEY_F23 = 193
    KEY_F24 = 194
    # Pseudo keys standing for scroll wheel movement.
    WHEEL_UP = 254
    WHEEL_DOWN = 255
    BTN_LEFT = 272
    BTN_RIGHT = 273
    BTN_MIDDLE = 274
    BTN_SIDE = 275
    BTN_EXTRA = 276


WHEEL_UP = Key.WHEEL_UP
WHEEL_DOWN = Key.WHEEL_DOWN


def _build_names() -> dict[str, Key]:
    names: dict[str, Key] = {}
    for char in "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789":
        names[char] = Key[f"KEY_{char}"]
    for number in range(1, 25):
        names[f"F{number}"] = Key[f"KEY_F{number}"]
    for number in range(10):
        names[f"NUMPAD_{number}"] = Key[f"KEY_KP{number}"]
        names[f"KP_{number}"] = Key[f"KEY_KP{number}"]

    aliases: list[tuple[tuple[str, ...], Key]] = [
        (("CTRL", "CONTROL", "LCTRL"), Key.KEY_LEFTCTRL),
        (("RCTRL",), Key.KEY_RIGHTCTRL),
        (("SHIFT", "LSHIFT"), Key.KEY_LEFTSHIFT),
        (("RSHIFT",), Key.KEY_RIGHTSHIFT),
        (("ALT", "LALT"), Key.KEY_LEFTALT),
        (("RALT",), Key.KEY_RIGHTALT),
        (("SUPER", "WIN", "META"), Key.KEY_LEFTMETA),
        (("ENTER", "RETURN"), Key.KEY_ENTER),
        (("ESC", "ESCAPE"), Key.KEY_ESC),
        (("BACKSPACE",), Key.KEY_BACKSPACE),
        (("TAB",), Key.KEY_TAB),
        (("SPACE",), Key.KEY_SPACE),
        (("DELETE", "DEL"), Key.KEY_DELETE),
        (("HOME",), Key.KEY_HOME),
        (("END",), Key.KEY_END),
        (("PAGEUP",), Key.KEY_PAGEUP),
        (("PAGEDOWN",), Key.KEY_PAGEDOWN),
        (("UP",), Key.KEY_UP),
        (("DOWN",), Key.KEY_DOWN),
        (("LEFT",), Key.KEY_LEFT),
        (("RIGHT",), Key.KEY_RIGHT),
        (("CAPSLOCK",), Key.KEY_CAPSLOCK),
        (("PAUSE",), Key.KEY_PAUSE),
        (("SCROLLLOCK",), Key.KEY_SCROLLLOCK),
        (("INSERT",), Key.KEY_INSERT),
        (("MINUS",), Key.KEY_MINUS),
        (("EQUAL",), Key.KEY_EQUAL),
        (("LEFTBRACKET",), Key.KEY_LEFTBRACE),
        (("RIGHTBRACKET",), Key.KEY_RIGHTBRACE),
        (("BACKSLASH",), Key.KEY_BACKSLASH),
        (("SEMICOLON",), Key.KEY_SEMICOLON),
        (("APOSTROPHE",), Key.KEY_APOSTROPHE),
        (("GRAVE", "BACKTICK"), Key.KEY_GRAVE),
        (("COMMA",), Key.KEY_COMMA),
        (("PERIOD", "."), Key.KEY_DOT),
        (("SLASH",), Key.KEY_SLASH),
        (("PLAY_PAUSE",), Key.KEY_PLAYPAUSE),
        (("NEXT_TRACK",), Key.KEY_NEXTSONG),
        (("PREV_TRACK",), Key.KEY_PREVIOUSSONG),
        (("VOLUME_UP",), Key.KEY_VOLUMEUP),
        (("VOLUME_DOWN",), Key.KEY_VOLUMEDOWN),
        (("MUTE",), Key.KEY_MUTE),
        (("BTN_LEFT", "LEFT_CLICK"), Key.BTN_LEFT),
        (("BTN_RIGHT", "RIGHT_CLICK"), Key.BTN_RIGHT),
        (("BTN_MIDDLE", "MIDDLE_CLICK"), Key.BTN_MIDDLE),
        (("BTN_SIDE", "MBACK"), Key.BTN_SIDE),
        (("BTN_EXTRA", "MFORWARD"), Key.BTN_EXTRA),
        (("NUMPAD_MULTIPLY",), Key.KEY_KPASTERISK),
        (("NUMPAD_PLUS",), Key.KEY_KPPLUS),
        (("NUMPAD_MINUS",), Key.KEY_KPMINUS),
        (("NUMPAD_DOT",), Key.KEY_KPDOT),
        (("NUMPAD_ENTER",), Key.KEY_KPENTER),
        (("NUMPAD_SLASH",), Key.KEY_KPSLASH),
        (("WHEEL_DOWN",), Key.WHEEL_DOWN),
        (("WHEEL_UP",), Key.WHEEL_UP),
    ]
    for spellings, key in aliases:
        for spelling in spellings:
            names[spelling] = key
    return names


_KEY_NAMES = _build_names()

_MODIFIERS = frozenset(
    {
        Key.KEY_LEFTCTRL,
        Key.KEY_RIGHTCTRL,
        Key.KEY_LEFTSHIFT,
        Key.KEY_RIGHTSHIFT,
        Key.KEY_LEFTALT,
        Key.KEY_RIGHTALT,
        Key.KEY_LEFTMETA,
        Key.KEY_RIGHTMETA,
    }
)


def parse_key(name: str) -> Key:
    """Return the key for a configuration key name, ignoring case."""
    try:
        return _KEY_NAMES[name.upper()]
    except KeyError:
        raise KeyNameError(name) from None


def is_modifier_key(code: int) -> bool:
    """Tell whether a key code is a CTRL, SHIFT, ALT or META key."""
    return code in _MODIFIERS


def compute_modifier_index(held: Iterable[int]) -> int:
    """Return the SHIFT|CTRL|ALT bitmask for a set of held key codes."""
    codes = set(held)
    index = 0
    if Key.KEY_LEFTSHIFT in codes or Key.KEY_RIGHTSHIFT in codes:
        index |= 1
    if Key.KEY_LEFTCTRL in codes or Key.KEY_RIGHTCTRL in codes:
        index |= 2
    if Key.KEY_LEFTALT in codes or Key.KEY_RIGHTALT in codes:
        index |= 4
    return index