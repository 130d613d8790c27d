import pytest

from keyremapd.keys import (
    MODIFIER_COUNT,
    WHEEL_DOWN,
    WHEEL_UP,
    Key,
    KeyNameError,
    compute_modifier_index,
    is_modifier_key,
    parse_key,
)

MODIFIERS = [
    Key.KEY_LEFTCTRL,
    Key.KEY_RIGHTCTRL,
    Key.KEY_LEFTSHIFT,
    Key.KEY_RIGHTSHIFT,
    Key.KEY_LEFTALT,
    Key.KEY_RIGHTALT,
    Key.KEY_LEFTMETA,
    Key.KEY_RIGHTMETA,
]


@pytest.mark.parametrize("char", list("ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"))
def test_letters_and_digits_map_to_their_keys(char):
    assert parse_key(char) is Key[f"KEY_{char}"]
    assert parse_key(char.lower()) is Key[f"KEY_{char}"]


def test_name_lookup_ignores_case():
    assert parse_key("CapsLock") is Key.KEY_CAPSLOCK
    assert parse_key("f12") is Key.KEY_F12
    assert parse_key("f24") is Key.KEY_F24


@pytest.mark.parametrize(
    "names, expected",
    [
        (["ctrl", "control", "lctrl"], Key.KEY_LEFTCTRL),
        (["super", "win", "meta"], Key.KEY_LEFTMETA),
        (["enter", "return"], Key.KEY_ENTER),
        (["period", "."], Key.KEY_DOT),
        (["grave", "backtick"], Key.KEY_GRAVE),
        (["btn_side", "mback"], Key.BTN_SIDE),
        (["numpad_7", "kp_7"], Key.KEY_KP7),
        (["leftbracket"], Key.KEY_LEFTBRACE),
    ],
)
def test_aliases(names, expected):
    assert [parse_key(name) for name in names] == [expected] * len(names)


def test_wheel_pseudo_keys():
    assert parse_key("wheel_up") == 254
    assert parse_key("WHEEL_DOWN") == 255
    assert parse_key("wheel_up") is WHEEL_UP
    assert parse_key("wheel_down") is WHEEL_DOWN


def test_unknown_name_raises():
    with pytest.raises(KeyNameError) as info:
        parse_key("hyper")
    assert info.value.name == "hyper"
    assert "hyper" in str(info.value)


def test_key_name_error_is_value_error():
    with pytest.raises(ValueError):
        parse_key("")


@pytest.mark.parametrize("key", MODIFIERS)
def test_modifiers_are_recognised(key):
    assert is_modifier_key(key) is True
    assert is_modifier_key(int(key)) is True


@pytest.mark.parametrize("key", [Key.KEY_A, Key.KEY_CAPSLOCK, Key.BTN_LEFT, WHEEL_UP])
def test_other_keys_are_not_modifiers(key):
    assert is_modifier_key(key) is False


def test_modifier_index_empty():
    assert compute_modifier_index(set()) == 0


@pytest.mark.parametrize(
    "held, expected",
    [
        ({Key.KEY_LEFTSHIFT}, 1),
        ({Key.KEY_RIGHTSHIFT}, 1),
        ({Key.KEY_LEFTCTRL}, 2),
        ({Key.KEY_RIGHTCTRL}, 2),
        ({Key.KEY_LEFTALT}, 4),
        ({Key.KEY_RIGHTALT}, 4),
    ],
)
def test_modifier_index_single_bits(held, expected):
    assert compute_modifier_index(held) == expected


def test_modifier_index_combines_bits():
    held = {Key.KEY_LEFTSHIFT, Key.KEY_RIGHTCTRL, Key.KEY_LEFTALT}
    assert compute_modifier_index(held) == 1 | 2 | 4
    assert compute_modifier_index(held) < MODIFIER_COUNT


def test_modifier_index_ignores_meta_and_plain_keys():
    assert compute_modifier_index({Key.KEY_LEFTMETA, Key.KEY_RIGHTMETA, Key.KEY_A}) == 0


def test_modifier_index_accepts_plain_ints():
    codes = [int(Key.KEY_LEFTSHIFT), int(Key.KEY_RIGHTSHIFT)]
    assert compute_modifier_index(codes) == compute_modifier_index({Key.KEY_LEFTSHIFT})