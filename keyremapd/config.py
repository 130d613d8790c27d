"""Configuration file model, validation and layer resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from os import PathLike
from typing import Any, Union

import yaml

from .keys import MODIFIER_COUNT, Key, KeyNameError, is_modifier_key, parse_key

DEFAULT_VOLUME_AMOUNT = 0.1


class ConfigError(ValueError):
    """Raised when the configuration is malformed."""


class VolumeDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    MUTE = "mute"


class MacroMode(str, Enum):
    ONCE = "once"
    HOLD = "hold"
    TOGGLE = "toggle"


class LayerMode(str, Enum):
    SHIFT = "shift"
    TOGGLE = "toggle"


@dataclass(frozen=True)
class KeyCombo:
    """A main key with the modifiers pressed around it."""

    modifiers: tuple[int, ...]
    key: int


@dataclass(frozen=True)
class MacroStep:
    combo: KeyCombo
    delay_ms: int = 0
    up: bool = False


@dataclass(frozen=True)
class KeyAction:
    combo: KeyCombo


@dataclass(frozen=True)
class MacroAction:
    mode: MacroMode
    steps: tuple[MacroStep, ...]


@dataclass(frozen=True)
class LayerAction:
    layer: str
    mode: LayerMode


@dataclass(frozen=True)
class VolumeAction:
    direction: VolumeDirection
    amount: float = DEFAULT_VOLUME_AMOUNT


@dataclass(frozen=True)
class AppVolumeAction:
    direction: VolumeDirection
    amount: float = DEFAULT_VOLUME_AMOUNT


@dataclass(frozen=True)
class LaunchAction:
    command: str


Action = Union[KeyAction, MacroAction, LayerAction, VolumeAction, AppVolumeAction, LaunchAction]


@dataclass(frozen=True)
class LookupResult:
    """A mapped action; ``fallback`` is set when it came from the unmodified slot."""

    action: Action
    fallback: bool = False


@dataclass
class RuntimeLayer:
    """A layer with its inherited mappings: key code to one slot per modifier index."""

    name: str
    mappings: dict[int, tuple[Action | None, ...]] = field(default_factory=dict)

    def lookup(self, key_code: int, modifier_index: int) -> LookupResult | None:
        """Find the action for a key under the given modifier bitmask."""
        slots = self.mappings.get(key_code)
        if slots is None:
            return None
        action = slots[modifier_index]
        if action is not None:
            return LookupResult(action)
        if modifier_index != 0 and slots[0] is not None:
            return LookupResult(slots[0], fallback=True)
        return None


@dataclass
class RuntimeConfig:
    layers: dict[str, RuntimeLayer]
    profile_map: dict[str, str]
    default_layer: str
    device_names: list[str]


_MISSING = object()


def _mapping(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: expected a mapping")
    return value


def _field(data: dict, name: str, where: str, default: Any = _MISSING) -> Any:
    if name in data:
        return data[name]
    if default is _MISSING:
        raise ConfigError(f"{where}: missing field '{name}'")
    return default


def _string(value: Any, where: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{where}: expected a string")
    return value


def _list(value: Any, where: str) -> list:
    if not isinstance(value, list):
        raise ConfigError(f"{where}: expected a list")
    return value


def _string_list(value: Any, where: str) -> list[str]:
    return [_string(item, where) for item in _list(value, where)]


def _number(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where}: expected a number")
    return float(value)


def _unsigned(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{where}: expected a non-negative integer")
    return value


def _boolean(value: Any, where: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{where}: expected true or false")
    return value


def _choice(enum_type: type[Enum], value: Any, where: str) -> Any:
    try:
        return enum_type(_string(value, where))
    except ValueError:
        choices = ", ".join(member.value for member in enum_type)
        raise ConfigError(f"{where}: unknown value {value!r}, expected one of {choices}") from None


def _key(name: str) -> Key:
    try:
        return parse_key(name)
    except KeyNameError as exc:
        raise ConfigError(str(exc)) from exc


def parse_combo(keys: list[str]) -> KeyCombo:
    """Resolve key names into modifiers and exactly one main key."""
    if not keys:
        raise ConfigError("Empty key combo")
    modifiers: list[int] = []
    main_key: int | None = None
    for name in keys:
        key = _key(name)
        if is_modifier_key(key):
            modifiers.append(key)
        elif main_key is not None:
            raise ConfigError(f"Multiple non-modifier keys in combo: {keys!r}")
        else:
            main_key = key
    if main_key is None:
        raise ConfigError(f"No main key in combo: {keys!r}")
    return KeyCombo(tuple(modifiers), main_key)


def parse_trigger(keys: list[str]) -> tuple[int, int]:
    """Resolve a trigger into its key code and SHIFT|CTRL|ALT modifier index."""
    if not keys:
        raise ConfigError("Empty trigger")
    modifier_index = 0
    main_key: int | None = None
    for name in keys:
        key = _key(name)
        if key in (Key.KEY_LEFTSHIFT, Key.KEY_RIGHTSHIFT):
            modifier_index |= 1
        elif key in (Key.KEY_LEFTCTRL, Key.KEY_RIGHTCTRL):
            modifier_index |= 2
        elif key in (Key.KEY_LEFTALT, Key.KEY_RIGHTALT):
            modifier_index |= 4
        elif main_key is not None:
            raise ConfigError(f"Multiple non-modifier keys in trigger: {keys!r}")
        else:
            main_key = key
    if main_key is None:
        raise ConfigError(f"Modifier-only triggers are not supported: {keys!r}")
    return main_key, modifier_index


def _macro_step(raw: Any) -> MacroStep:
    data = _mapping(raw, "macro step")
    return MacroStep(
        combo=parse_combo(_string_list(_field(data, "keys", "macro step"), "macro step keys")),
        delay_ms=_unsigned(_field(data, "delay_ms", "macro step", 0), "delay_ms"),
        up=_boolean(_field(data, "up", "macro step", False), "up"),
    )


def parse_action(raw: Any) -> Action:
    """Validate one action mapping (tagged by ``type``) and resolve its keys."""
    data = _mapping(raw, "action")
    kind = _string(_field(data, "type", "action"), "action type")
    where = f"{kind} action"
    if kind == "key":
        return KeyAction(parse_combo(_string_list(_field(data, "keys", where), "keys")))
    if kind == "macro":
        mode = _choice(MacroMode, _field(data, "mode", where), "macro mode")
        steps = tuple(_macro_step(step) for step in _list(_field(data, "steps", where), "steps"))
        return MacroAction(mode, steps)
    if kind == "layer":
        return LayerAction(
            layer=_string(_field(data, "layer", where), "layer"),
            mode=_choice(LayerMode, _field(data, "mode", where), "layer mode"),
        )
    if kind in ("volume", "app_volume"):
        direction = _choice(VolumeDirection, _field(data, "direction", where), "direction")
        amount = _number(_field(data, "amount", where, DEFAULT_VOLUME_AMOUNT), "amount")
        action_type = VolumeAction if kind == "volume" else AppVolumeAction
        return action_type(direction, amount)
    if kind == "launch":
        return LaunchAction(_string(_field(data, "command", where), "command"))
    raise ConfigError(f"Unknown action type: {kind}")


@dataclass
class _LayerSpec:
    parent: str | None
    entries: list[tuple[int, int, Action]]


def _layer_spec(name: str, raw: Any) -> _LayerSpec:
    where = f"layer '{name}'"
    data = _mapping(raw, where)
    parent = _field(data, "parent", where, None)
    if parent is not None:
        parent = _string(parent, f"{where} parent")
    entries = []
    for raw_mapping in _list(_field(data, "mappings", where, []), f"{where} mappings"):
        mapping = _mapping(raw_mapping, f"{where} mapping")
        trigger = _string_list(_field(mapping, "trigger", f"{where} mapping"), "trigger")
        action = parse_action(_field(mapping, "action", f"{where} mapping"))
        key_code, modifier_index = parse_trigger(trigger)
        entries.append((key_code, modifier_index, action))
    return _LayerSpec(parent, entries)


def resolve_layers(raw_layers: Any) -> dict[str, RuntimeLayer]:
    """Build every layer, applying each layer's mappings over its parent's."""
    specs: dict[str, _LayerSpec] = {}
    for name, raw in _mapping(raw_layers, "layers").items():
        specs[_string(name, "layer name")] = _layer_spec(name, raw)

    cache: dict[str, dict[int, list[Action | None]]] = {}

    def resolve(name: str, chain: tuple[str, ...]) -> dict[int, list[Action | None]]:
        if name in cache:
            return cache[name]
        spec = specs.get(name)
        if spec is None:
            raise ConfigError(f"Layer not found: {name}")
        if name in chain:
            raise ConfigError(f"Layer inheritance cycle: {' -> '.join((*chain, name))}")
        if spec.parent is not None:
            inherited = resolve(spec.parent, (*chain, name))
            mappings = {code: list(slots) for code, slots in inherited.items()}
        else:
            mappings = {}
        for key_code, modifier_index, action in spec.entries:
            slots = mappings.setdefault(key_code, [None] * MODIFIER_COUNT)
            slots[modifier_index] = action
        cache[name] = mappings
        return mappings

    return {
        name: RuntimeLayer(
            name, {code: tuple(slots) for code, slots in resolve(name, ()).items()}
        )
        for name in specs
    }


def loads(text: str) -> RuntimeConfig:
    """Parse a YAML configuration document."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc
    data = _mapping(document, "config")
    device_names = _string_list(_field(data, "device_names", "config"), "device_names")
    default_layer = _string(_field(data, "default_layer", "config"), "default_layer")
    profiles = _list(_field(data, "profiles", "config", []), "profiles")

    profile_map: dict[str, str] = {}
    for raw_profile in profiles:
        profile = _mapping(raw_profile, "profile")
        wm_classes = _string_list(_field(profile, "wm_classes", "profile"), "wm_classes")
        layer = _string(_field(profile, "layer", "profile"), "profile layer")
        for wm_class in wm_classes:
            profile_map[wm_class] = layer

    layers = resolve_layers(_field(data, "layers", "config"))
    return RuntimeConfig(
        layers=layers,
        profile_map=profile_map,
        default_layer=default_layer,
        device_names=device_names,
    )


def load(path: str | PathLike[str]) -> RuntimeConfig:
    """Read and parse a YAML configuration file."""
    with open(path, encoding="utf-8") as handle:
        return loads(handle.read())