"""The remapping loop: reads grabbed devices, applies layers and writes to virtual devices."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from enum import Enum

from .config import RuntimeConfig
from .devices import InputDevice, VirtualOutput, grab_devices
from .dispatch import InputState, handle_action
from .events import (
    EventSink,
    EventType,
    InputEvent,
    resolve_key,
    resolve_value,
    should_passthrough,
    should_skip_event_on_action,
)
from .keys import compute_modifier_index, is_modifier_key
from .watcher import WindowInfo

logger = logging.getLogger(__name__)

MACRO_QUEUE_SIZE = 32


class _Source(Enum):
    MACRO = "macro"
    WINDOW = "window"
    INPUT = "input"


async def process_key_event(
    event: InputEvent,
    output: EventSink,
    macro_queue: asyncio.Queue[InputEvent],
    state: InputState,
    config: RuntimeConfig,
    window: WindowInfo | None,
) -> None:
    """Remap one key, button or wheel event through the active layer."""
    key = resolve_key(event)
    value = resolve_value(event)

    if is_modifier_key(key):
        if value == 1:
            state.held_modifiers.add(key)
        elif value == 0:
            state.held_modifiers.discard(key)
        output.emit([event])
        return

    if state.shift_trigger_key == key:
        if value != 0:
            return
        logger.debug("Shift trigger released")
        state.shift_layer = None
        state.shift_trigger_key = None

    # Repeats reuse whatever the press decided, even if the layer changed since.
    if value == 2:
        action = state.pending_releases.get(key)
        if action is None:
            output.emit([event])
        else:
            await handle_action(
                action, value, key, output, macro_queue, state, config, window, None
            )
        return

    if value == 0:
        action = state.pending_releases.pop(key, None)
        if action is None:
            output.emit([event])
        else:
            await handle_action(
                action, value, key, output, macro_queue, state, config, window, None
            )
        return

    modifier_index = compute_modifier_index(state.held_modifiers)
    result = state.active_layer().lookup(key, modifier_index)

    if result is None:
        output.emit([event])
        return
    if should_skip_event_on_action(event):
        return

    state.pending_releases[key] = result.action
    held: Iterable[int] | None = set(state.held_modifiers) if result.fallback else None
    await handle_action(
        result.action, value, key, output, macro_queue, state, config, window, held
    )


def update_base_layer(
    config: RuntimeConfig, state: InputState, window: WindowInfo | None
) -> None:
    """Switch the base layer to the profile of the focused window, or the default."""
    layer_name = config.default_layer
    if window is not None:
        logger.info(
            "Window = title: '%s' wm_class: '%s' pid: '%s'",
            window.title,
            window.wm_class,
            window.pid,
        )
        profile_layer = config.profile_map.get(window.wm_class)
        if profile_layer is not None and profile_layer in config.layers:
            layer_name = profile_layer
    layer = config.layers.get(layer_name)
    if layer is not None:
        state.current_layer = layer


async def _pump_macros(
    macro_queue: asyncio.Queue[InputEvent], inbox: asyncio.Queue[tuple[_Source, object]]
) -> None:
    while True:
        await inbox.put((_Source.MACRO, await macro_queue.get()))


async def _pump_windows(
    window_updates: asyncio.Queue[WindowInfo | None],
    inbox: asyncio.Queue[tuple[_Source, object]],
) -> None:
    while True:
        await inbox.put((_Source.WINDOW, await window_updates.get()))


async def _read_device(
    label: str, device: InputDevice, inbox: asyncio.Queue[tuple[_Source, object]]
) -> None:
    try:
        async for event in device.events():
            await inbox.put((_Source.INPUT, event))
    except OSError as exc:
        logger.error("%s input error: %s", label, exc)


async def run(
    window_updates: asyncio.Queue[WindowInfo | None], config: RuntimeConfig
) -> None:
    """Grab the configured devices and remap their events until cancelled.

    ``window_updates`` delivers the focused window whenever it changes.
    """
    output = VirtualOutput()
    keyboards: dict[str, InputDevice] = {}
    mice: dict[str, InputDevice] = {}
    try:
        keyboards, mice = grab_devices(config.device_names)
        if not keyboards and not mice:
            raise RuntimeError("No keyboard or mouse devices found")
        logger.debug("Grabbed %d keyboard(s), %d mouse(s)", len(keyboards), len(mice))

        default_layer = config.layers.get(config.default_layer)
        if default_layer is None:
            raise RuntimeError(f"Default layer '{config.default_layer}' not found")
        state = InputState(default_layer)

        macro_queue: asyncio.Queue[InputEvent] = asyncio.Queue(maxsize=MACRO_QUEUE_SIZE)
        inbox: asyncio.Queue[tuple[_Source, object]] = asyncio.Queue()
        tasks = [
            asyncio.create_task(_pump_macros(macro_queue, inbox)),
            asyncio.create_task(_pump_windows(window_updates, inbox)),
            *(
                asyncio.create_task(_read_device("Keyboard", device, inbox))
                for device in keyboards.values()
            ),
            *(
                asyncio.create_task(_read_device("Mouse", device, inbox))
                for device in mice.values()
            ),
        ]
        try:
            window: WindowInfo | None = None
            while True:
                source, payload = await inbox.get()
                if source is _Source.MACRO:
                    output.emit([payload])
                elif source is _Source.WINDOW:
                    window = payload
                    update_base_layer(config, state, window)
                else:
                    if should_passthrough(payload):
                        if payload.event_type != EventType.ABSOLUTE:
                            output.emit([payload])
                        continue
                    await process_key_event(
                        payload, output, macro_queue, state, config, window
                    )
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        for device in (*keyboards.values(), *mice.values()):
            device.close()
        output.close()
        logger.debug("Devices ungrabbed.")