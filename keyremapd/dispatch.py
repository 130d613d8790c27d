"""Carrying out mapped actions: combos, layer switches, macros and side effects."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from . import actions
from .config import (
    Action,
    AppVolumeAction,
    KeyAction,
    KeyCombo,
    LaunchAction,
    LayerAction,
    LayerMode,
    MacroAction,
    MacroMode,
    MacroStep,
    RuntimeConfig,
    RuntimeLayer,
    VolumeAction,
)
from .events import EventSink, InputEvent, build_combo_events, emit_combo
from .watcher import WindowInfo

import logging

logger = logging.getLogger(__name__)

_running_macros: set[asyncio.Task] = set()


@dataclass
class InputState:
    """Mutable state of the remapping loop."""

    current_layer: RuntimeLayer
    shift_layer: RuntimeLayer | None = None
    shift_trigger_key: int | None = None
    held_modifiers: set[int] = field(default_factory=set)
    macro_cancels: dict[int, asyncio.Event] = field(default_factory=dict)
    pending_releases: dict[int, Action] = field(default_factory=dict)

    def active_layer(self) -> RuntimeLayer:
        """The shifted or toggled layer if one is on, otherwise the base layer."""
        return self.shift_layer if self.shift_layer is not None else self.current_layer


async def handle_action(
    action: Action,
    value: int,
    key_code: int,
    output: EventSink,
    macro_queue: asyncio.Queue[InputEvent],
    state: InputState,
    config: RuntimeConfig,
    window: WindowInfo | None,
    held_modifiers: Iterable[int] | None,
) -> None:
    """Carry out an action for a key press (1), repeat (2) or release (0)."""
    match action:
        case KeyAction(combo=combo):
            emit_combo(output, combo, value, held_modifiers)
        case LayerAction(layer=name, mode=LayerMode.SHIFT):
            if value == 1:
                layer = config.layers.get(name)
                if layer is not None:
                    logger.debug("Shift layer on: %s", name)
                    state.shift_layer = layer
                    state.shift_trigger_key = key_code
            elif value == 0:
                logger.debug("Shift layer off")
                state.shift_layer = None
                state.shift_trigger_key = None
        case LayerAction(layer=name, mode=LayerMode.TOGGLE):
            if value == 1:
                if state.shift_layer is not None and state.shift_layer.name == name:
                    logger.debug("Toggle layer off: %s", name)
                    state.shift_layer = None
                elif name in config.layers:
                    logger.debug("Toggle layer on: %s", name)
                    state.shift_layer = config.layers[name]
        case VolumeAction(direction=direction, amount=amount):
            if value == 1:
                actions.system_volume(direction, amount)
        case AppVolumeAction(direction=direction, amount=amount):
            if value == 1:
                actions.app_volume(direction, amount, window.pid if window else None)
        case LaunchAction(command=command):
            if value == 1:
                actions.launch(command)
        case MacroAction(mode=mode, steps=steps):
            _handle_macro(mode, steps, value, key_code, macro_queue, state)


def _handle_macro(
    mode: MacroMode,
    steps: Sequence[MacroStep],
    value: int,
    key_code: int,
    macro_queue: asyncio.Queue[InputEvent],
    state: InputState,
) -> None:
    held = frozenset(state.held_modifiers)
    if mode is MacroMode.ONCE:
        if value == 1:
            spawn_macro(macro_queue, steps, mode, held, key_code, state.macro_cancels)
    elif mode is MacroMode.HOLD:
        if value == 1:
            spawn_macro(macro_queue, steps, mode, held, key_code, state.macro_cancels)
        elif value == 0:
            stop_macro_for_key(state, key_code)
    elif value == 1:
        if key_code in state.macro_cancels:
            stop_macro_for_key(state, key_code)
        else:
            spawn_macro(macro_queue, steps, mode, held, key_code, state.macro_cancels)


def spawn_macro(
    macro_queue: asyncio.Queue[InputEvent],
    steps: Sequence[MacroStep],
    mode: MacroMode,
    held_modifiers: Iterable[int],
    key_code: int,
    cancels: dict[int, asyncio.Event],
) -> asyncio.Task:
    """Start a macro for a key, cancelling one already running for it."""
    existing = cancels.pop(key_code, None)
    if existing is not None:
        existing.set()
    cancel = asyncio.Event()
    held = frozenset(held_modifiers)
    steps = tuple(steps)

    async def play() -> None:
        if mode is MacroMode.ONCE:
            await run_macro_once(macro_queue, steps, cancel, held)
            return
        while not cancel.is_set():
            await run_macro_once(macro_queue, steps, cancel, held)
            await asyncio.sleep(0)

    task = asyncio.get_running_loop().create_task(play())
    _running_macros.add(task)
    task.add_done_callback(_running_macros.discard)
    cancels[key_code] = cancel
    return task


def stop_macro_for_key(state: InputState, key_code: int) -> None:
    """Cancel the macro running for a key and forget cancelled macros."""
    cancel = state.macro_cancels.pop(key_code, None)
    if cancel is not None:
        cancel.set()
    state.macro_cancels = {
        code: event for code, event in state.macro_cancels.items() if not event.is_set()
    }


async def run_macro_once(
    macro_queue: asyncio.Queue[InputEvent],
    steps: Sequence[MacroStep],
    cancel: asyncio.Event,
    held_modifiers: Iterable[int],
) -> None:
    """Play the steps once, then release whatever combos are still pressed."""
    held = frozenset(held_modifiers) or None
    pressed: list[KeyCombo] = []

    for step in steps:
        if cancel.is_set():
            break
        for event in build_combo_events(step.combo, 0 if step.up else 1, held):
            await macro_queue.put(event)
        if step.up:
            pressed = [combo for combo in pressed if combo.key != step.combo.key]
        else:
            pressed.append(step.combo)
        if step.delay_ms > 0:
            try:
                await asyncio.wait_for(cancel.wait(), step.delay_ms / 1000)
            except asyncio.TimeoutError:
                pass
            else:
                break

    for combo in reversed(pressed):
        for event in build_combo_events(combo, 0, held):
            await macro_queue.put(event)