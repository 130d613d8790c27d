"""Side-effect actions: volume control and launching commands."""

from __future__ import annotations

import logging
import math
import re
import struct
import subprocess
from collections.abc import Sequence

from .config import VolumeDirection

logger = logging.getLogger(__name__)

_U32_MAX = 2**32 - 1
_U32_PATTERN = re.compile(r"\+?[0-9]+")
_SINK_INPUT_PREFIX = "Sink Input #"


def _f32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


def _parse_u32(text: str) -> int | None:
    if not _U32_PATTERN.fullmatch(text):
        return None
    number = int(text)
    return number if number <= _U32_MAX else None


def run_command(cmd: str, args: Sequence[str]) -> subprocess.Popen | None:
    """Start a command without waiting for it; log and return None on failure."""
    logger.debug("Running: %s %s", cmd, " ".join(args))
    try:
        return subprocess.Popen([cmd, *args])
    except OSError as exc:
        logger.warning("Command '%s' failed: %s (is it installed?)", cmd, exc)
        return None


def launch(command: str) -> subprocess.Popen | None:
    """Run a shell command line in the background."""
    logger.debug("Launching: %s", command)
    try:
        process = subprocess.Popen(["sh", "-c", command])
    except OSError as exc:
        logger.error("Failed to launch '%s': %s", command, exc)
        return None
    logger.debug("Launched: %s", command)
    return process


def volume_argument(direction: VolumeDirection | str, amount: float) -> str:
    """Return the volume step argument, such as ``10%+``, or ``toggle`` for mute."""
    direction = VolumeDirection(direction)
    if direction is VolumeDirection.MUTE:
        return "toggle"
    percent = _f32(_f32(amount) * 100.0)
    if math.isnan(percent):
        whole = 0
    else:
        whole = int(min(max(percent, 0.0), float(_U32_MAX)))
    sign = "+" if direction is VolumeDirection.UP else "-"
    return f"{whole}%{sign}"


def system_volume(direction: VolumeDirection | str, amount: float) -> None:
    """Change or mute the default audio sink."""
    direction = VolumeDirection(direction)
    if direction is VolumeDirection.MUTE:
        args = ["set-mute", "@DEFAULT_AUDIO_SINK@", "toggle"]
    else:
        args = [
            "set-volume",
            "--limit",
            "1.0",
            "@DEFAULT_AUDIO_SINK@",
            volume_argument(direction, amount),
        ]
    run_command("wpctl", args)


def find_sink_input(text: str, pid: int) -> int | None:
    """Find the sink input index owned by a process in ``pactl list sink-inputs`` output."""
    current_index: int | None = None
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line.startswith(_SINK_INPUT_PREFIX):
            rest = line
            while rest.startswith(_SINK_INPUT_PREFIX):
                rest = rest[len(_SINK_INPUT_PREFIX):]
            current_index = _parse_u32(rest)
        if line.startswith("application.process.id"):
            parts = line.split("=")
            if len(parts) > 1 and _parse_u32(parts[1].strip().strip('"')) == pid:
                return current_index
    return None


def find_sink_input_by_pid(pid: int) -> int | None:
    """Ask pactl for the sink input that belongs to a process."""
    try:
        result = subprocess.run(
            ["pactl", "list", "sink-inputs"], capture_output=True, check=False
        )
    except OSError as exc:
        logger.warning("pactl not found or failed: %s", exc)
        return None
    return find_sink_input(result.stdout.decode("utf-8", errors="replace"), pid)


def app_volume(direction: VolumeDirection | str, amount: float, pid: int | None) -> None:
    """Change or mute the audio stream of the process with the given id."""
    direction = VolumeDirection(direction)
    if pid is None:
        logger.warning("App volume: no active window PID")
        return
    sink_index = find_sink_input_by_pid(pid)
    if sink_index is None:
        logger.warning("App volume: no sink input found for PID %s", pid)
        return
    index = str(sink_index)
    if direction is VolumeDirection.MUTE:
        args = ["set-sink-input-mute", index, "toggle"]
    else:
        args = ["set-sink-input-volume", index, volume_argument(direction, amount)]
    run_command("pactl", args)