"""Watching which window has focus, under KDE Plasma or GNOME."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

Publish = Callable[["WindowInfo | None"], None]

_U32_MAX = 2**32 - 1
_U32_PATTERN = re.compile(r"\+?[0-9]+")

KWIN_SCRIPT = """
workspace.windowActivated.connect(function(window) {
    if (!window) return;
    callDBus(
        "org.kde.WindowWatcher",
        "/WindowWatcher",
        "org.kde.WindowWatcher",
        "windowActivated",
        window.caption || "",
        window.resourceClass || "",
        window.resourceName || "",
        window.pid || 0
    );
});
"""

KWIN_PLUGIN_NAME = "keyremapd-window-watcher"
_KWIN_SERVICE = "org.kde.KWin"
_KWIN_SCRIPTING_PATH = "/Scripting"
_KWIN_SCRIPTING_INTERFACE = "org.kde.kwin.Scripting"

GNOME_SERVICE = "org.gnome.Shell"
GNOME_PATH = "/org/gnome/shell/extensions/FocusedWindow"
GNOME_INTERFACE = "org.gnome.shell.extensions.FocusedWindow"


def _parse_u32(text: str) -> int | None:
    if not _U32_PATTERN.fullmatch(text):
        return None
    number = int(text)
    return number if number <= _U32_MAX else None


@dataclass(frozen=True)
class WindowInfo:
    """The focused window: title, WM class, class instance and process id."""

    title: str
    wm_class: str
    wm_class_instance: str
    pid: int

    @classmethod
    def from_json(cls, text: str) -> WindowInfo:
        """Parse a JSON object with all four fields; raise ValueError otherwise."""
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("window info must be a JSON object")
        values = {}
        for name in ("title", "wm_class", "wm_class_instance"):
            if name not in data:
                raise ValueError(f"missing field '{name}'")
            if not isinstance(data[name], str):
                raise ValueError(f"field '{name}' must be a string")
            values[name] = data[name]
        if "pid" not in data:
            raise ValueError("missing field 'pid'")
        pid = data["pid"]
        if isinstance(pid, bool) or not isinstance(pid, int) or not 0 <= pid <= _U32_MAX:
            raise ValueError("field 'pid' must be an unsigned 32-bit integer")
        return cls(pid=pid, **values)


def script_path(environ: Mapping[str, str] | None = None) -> Path:
    """Return where the KWin watcher script lives under the user's data directory."""
    env = os.environ if environ is None else environ
    if "XDG_DATA_HOME" in env:
        base = Path(env["XDG_DATA_HOME"])
    elif "HOME" in env:
        base = Path(env["HOME"]) / ".local" / "share"
    else:
        raise RuntimeError("HOME not set")
    return base / "keyremapd" / "kwin-watcher.js"


def ensure_script(path: str | os.PathLike[str] | None = None) -> Path:
    """Write the KWin script unless the file already holds it; return its path."""
    target = script_path() if path is None else Path(path)
    try:
        current = target.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        current = ""
    if current != KWIN_SCRIPT:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(KWIN_SCRIPT, encoding="utf-8")
        logger.debug("KWin script written to: %s", target)
    else:
        logger.debug("KWin script already up to date at: %s", target)
    return target


def parse_dbus_value(line: str) -> str | None:
    """Extract a string or integer argument from a dbus-monitor output line."""
    line = line.strip()
    if line.startswith('string "'):
        return line[len('string "'):].rstrip('"')
    for prefix in ("uint32 ", "int32 "):
        if line.startswith(prefix):
            return line[len(prefix):].strip()
    return None


class KdeSignalParser:
    """Collects the arguments of windowActivated signals from dbus-monitor output."""

    def __init__(self) -> None:
        self._caption = ""
        self._resource_class = ""
        self._resource_name = ""
        self._field = 0

    def feed(self, line: str) -> WindowInfo | None:
        """Take one output line; return the window once its last argument arrives."""
        line = line.strip()
        if "member=windowActivated" in line:
            self._caption = ""
            self._resource_class = ""
            self._resource_name = ""
            self._field = 0
            return None
        value = parse_dbus_value(line)
        if value is None:
            return None
        if self._field == 0:
            self._caption = value
        elif self._field == 1:
            self._resource_class = value
        elif self._field == 2:
            self._resource_name = value
        elif self._field == 3:
            pid = _parse_u32(value)
            self._field = 0
            return WindowInfo(
                title=self._caption,
                wm_class=self._resource_class,
                wm_class_instance=self._resource_name,
                pid=0 if pid is None else pid,
            )
        self._field += 1
        return None


_GVARIANT_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
}


def _gvariant_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _read_gvariant_string(text: str) -> str:
    """Decode the quoted GVariant string literal at the start of ``text``."""
    if not text or text[0] not in "'\"":
        raise ValueError(f"expected a quoted string: {text!r}")
    quote = text[0]
    chars: list[str] = []
    pos = 1
    while pos < len(text):
        char = text[pos]
        if char == quote:
            return "".join(chars)
        if char == "\\" and pos + 1 < len(text):
            escape = text[pos + 1]
            if escape in "uU":
                width = 4 if escape == "u" else 8
                digits = text[pos + 2 : pos + 2 + width]
                chars.append(chr(int(digits, 16)))
                pos += 2 + width
                continue
            chars.append(_GVARIANT_ESCAPES.get(escape, escape))
            pos += 2
            continue
        chars.append(char)
        pos += 1
    raise ValueError("unterminated string")


def _strip_tuple(reply: str) -> str:
    reply = reply.strip()
    if reply.startswith("(") and reply.endswith(")"):
        reply = reply[1:-1]
    return reply.strip()


def _first_reply_string(reply: str) -> str:
    return _read_gvariant_string(_strip_tuple(reply))


def _first_reply_scalar(reply: str) -> str:
    return _strip_tuple(reply).split(",")[0].strip()


async def _gdbus_call(destination: str, object_path: str, method: str, *args: str) -> str:
    process = await asyncio.create_subprocess_exec(
        "gdbus",
        "call",
        "--session",
        "--dest",
        destination,
        "--object-path",
        object_path,
        "--method",
        method,
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    out, err = await process.communicate()
    if process.returncode != 0:
        message = err.decode("utf-8", errors="replace").strip()
        raise RuntimeError(f"D-Bus call {method} failed: {message}")
    return out.decode("utf-8", errors="replace").strip()


async def _stop(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        process.kill()
        await process.wait()


async def load_kwin_script() -> None:
    """Install the watcher script into KWin, replacing an earlier instance, and run it."""
    path = ensure_script()
    plugin = _gvariant_quote(KWIN_PLUGIN_NAME)

    loaded = await _gdbus_call(
        _KWIN_SERVICE,
        _KWIN_SCRIPTING_PATH,
        f"{_KWIN_SCRIPTING_INTERFACE}.isScriptLoaded",
        plugin,
    )
    if _first_reply_scalar(loaded) == "true":
        logger.debug("Unloading previous KWin script instance...")
        await _gdbus_call(
            _KWIN_SERVICE,
            _KWIN_SCRIPTING_PATH,
            f"{_KWIN_SCRIPTING_INTERFACE}.unloadScript",
            plugin,
        )

    reply = await _gdbus_call(
        _KWIN_SERVICE,
        _KWIN_SCRIPTING_PATH,
        f"{_KWIN_SCRIPTING_INTERFACE}.loadScript",
        _gvariant_quote(str(path)),
        plugin,
    )
    try:
        script_id = int(_first_reply_scalar(reply))
    except ValueError:
        raise RuntimeError(f"Unexpected reply from KWin: {reply}") from None
    if script_id < 0:
        raise RuntimeError(f"KWin rejected the script (id={script_id}). Check: {path}")

    await _gdbus_call(
        _KWIN_SERVICE, f"/Scripting/Script{script_id}", "org.kde.kwin.Script.run"
    )
    logger.debug("KWin script loaded and running (id=%s).", script_id)


async def watch_kde(publish: Publish) -> None:
    """Publish every window KWin activates; raise when the monitor stops."""
    await load_kwin_script()
    process = await asyncio.create_subprocess_exec(
        "dbus-monitor",
        "--session",
        "interface='org.kde.WindowWatcher'",
        stdout=asyncio.subprocess.PIPE,
    )
    try:
        assert process.stdout is not None
        logger.debug("KDE watcher ready.")
        parser = KdeSignalParser()
        async for raw in process.stdout:
            info = parser.feed(raw.decode("utf-8", errors="replace"))
            if info is not None:
                logger.debug(
                    'KDE window activated: class="%s" title="%s" pid=%s',
                    info.wm_class,
                    info.title,
                    info.pid,
                )
                publish(info)
    finally:
        await _stop(process)
    raise RuntimeError("dbus-monitor exited unexpectedly")


async def watch_gnome(publish: Publish) -> None:
    """Publish the focused window reported by the GNOME Shell extension."""
    try:
        reply = await _gdbus_call(GNOME_SERVICE, GNOME_PATH, f"{GNOME_INTERFACE}.Get")
        info = WindowInfo.from_json(_first_reply_string(reply))
    except (RuntimeError, ValueError) as exc:
        logger.debug("No initial window: %s", exc)
    else:
        logger.debug("Initial window: %s", info)
        publish(info)

    process = await asyncio.create_subprocess_exec(
        "gdbus",
        "monitor",
        "--session",
        "--dest",
        GNOME_SERVICE,
        "--object-path",
        GNOME_PATH,
        stdout=asyncio.subprocess.PIPE,
    )
    marker = f"{GNOME_INTERFACE}.FocusChanged "
    try:
        assert process.stdout is not None
        logger.debug("GNOME watcher listening for focus changes...")
        async for raw in process.stdout:
            line = raw.decode("utf-8", errors="replace")
            _, found, rest = line.partition(marker)
            if not found:
                continue
            try:
                info = WindowInfo.from_json(_first_reply_string(rest))
            except ValueError:
                continue
            logger.debug("Window changed: %s", info)
            publish(info)
    finally:
        await _stop(process)