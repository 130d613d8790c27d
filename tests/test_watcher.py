import json
from dataclasses import asdict

import pytest

from keyremapd.watcher import (
    KWIN_SCRIPT,
    KdeSignalParser,
    WindowInfo,
    ensure_script,
    parse_dbus_value,
    script_path,
)

SIGNAL_HEADER = (
    "signal time=1700000000.1 sender=:1.42 -> destination=(null destination) "
    "serial=7 path=/WindowWatcher; interface=org.kde.WindowWatcher; member=windowActivated"
)


@pytest.mark.parametrize(
    "line, expected",
    [
        ('   string "Firefox"', "Firefox"),
        ('string "quoted""', "quoted"),
        ("uint32 1234 ", "1234"),
        ("   int32 -1", "-1"),
        ("array [", None),
        (SIGNAL_HEADER, None),
    ],
)
def test_parse_dbus_value(line, expected):
    assert parse_dbus_value(line) == expected


def test_parser_emits_window_after_four_arguments():
    parser = KdeSignalParser()
    lines = [
        SIGNAL_HEADER,
        '   string "Terminal"',
        '   string "konsole"',
        '   string "konsole-instance"',
    ]
    assert [parser.feed(line) for line in lines] == [None, None, None, None]
    info = parser.feed("   int32 4242")
    assert info == WindowInfo("Terminal", "konsole", "konsole-instance", 4242)


def test_parser_uses_zero_for_unparsable_pid():
    parser = KdeSignalParser()
    for line in [SIGNAL_HEADER, 'string "a"', 'string "b"', 'string "c"']:
        parser.feed(line)
    assert parser.feed("int32 -1").pid == 0


def test_parser_header_resets_partial_signal():
    parser = KdeSignalParser()
    parser.feed(SIGNAL_HEADER)
    parser.feed('string "stale"')
    parser.feed(SIGNAL_HEADER)
    for line in ['string "Editor"', 'string "kate"', 'string "kate"']:
        assert parser.feed(line) is None
    info = parser.feed("uint32 77")
    assert info == WindowInfo("Editor", "kate", "kate", 77)


def test_parser_starts_over_after_emitting():
    parser = KdeSignalParser()
    for line in ['string "one"', 'string "c1"', 'string "i1"']:
        parser.feed(line)
    first = parser.feed("uint32 1")
    for line in ['string "two"', 'string "c2"', 'string "i2"']:
        parser.feed(line)
    second = parser.feed("uint32 2")
    assert first.title == "one"
    assert second == WindowInfo("two", "c2", "i2", 2)


def test_window_info_json_round_trip():
    info = WindowInfo("Inbox", "thunderbird", "Mail", 31337)
    assert WindowInfo.from_json(json.dumps(asdict(info))) == info


def test_window_info_ignores_unknown_fields():
    text = json.dumps(
        {"title": "t", "wm_class": "c", "wm_class_instance": "i", "pid": 5, "extra": 1}
    )
    assert WindowInfo.from_json(text) == WindowInfo("t", "c", "i", 5)


@pytest.mark.parametrize(
    "data",
    [
        {"title": "t", "wm_class": "c", "wm_class_instance": "i"},
        {"title": "t", "wm_class": "c", "wm_class_instance": "i", "pid": -1},
        {"title": "t", "wm_class": "c", "wm_class_instance": "i", "pid": True},
        {"title": "t", "wm_class": "c", "wm_class_instance": "i", "pid": 1.5},
        {"title": 3, "wm_class": "c", "wm_class_instance": "i", "pid": 1},
        ["t", "c", "i", 1],
    ],
)
def test_window_info_rejects_bad_json(data):
    with pytest.raises(ValueError):
        WindowInfo.from_json(json.dumps(data))


def test_window_info_rejects_malformed_text():
    with pytest.raises(ValueError):
        WindowInfo.from_json("{not json")


def test_script_path_prefers_xdg_data_home(tmp_path):
    path = script_path({"XDG_DATA_HOME": str(tmp_path), "HOME": "/nonexistent"})
    assert path == tmp_path / "keyremapd" / "kwin-watcher.js"


def test_script_path_falls_back_to_home(tmp_path):
    path = script_path({"HOME": str(tmp_path)})
    assert path == tmp_path / ".local" / "share" / "keyremapd" / "kwin-watcher.js"


def test_script_path_without_home_raises():
    with pytest.raises(RuntimeError):
        script_path({})


def test_ensure_script_writes_script(tmp_path):
    target = tmp_path / "data" / "kwin-watcher.js"
    assert ensure_script(target) == target
    assert target.read_text(encoding="utf-8") == KWIN_SCRIPT


def test_ensure_script_replaces_outdated_content(tmp_path):
    target = tmp_path / "kwin-watcher.js"
    target.write_text("old script", encoding="utf-8")
    ensure_script(target)
    assert target.read_text(encoding="utf-8") == KWIN_SCRIPT


def test_ensure_script_leaves_current_file_alone(tmp_path):
    target = tmp_path / "kwin-watcher.js"
    ensure_script(target)
    before = target.stat().st_mtime_ns
    ensure_script(target)
    assert target.stat().st_mtime_ns == before
    assert target.read_text(encoding="utf-8") == KWIN_SCRIPT