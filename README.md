# keyremapd

A small daemon that grabs keyboards and mice on Linux, remaps keys, mouse
buttons and the scroll wheel through layers, and switches the base layer
depending on which application window has focus.

It can:

- remap a key, or a key with SHIFT/CTRL/ALT held, to another key combination;
- run macros once, while a key is held, or toggled on and off;
- switch to a layer while a key is held, or toggle a layer on and off;
- change or mute the system volume (through `wpctl`);
- change or mute the audio stream of the focused application (through `pactl`,
  matched by the window's process id);
- launch shell commands (run with `sh -c`).

## Installing

```
pip install .
```

The daemon reads `/dev/input/event*` and writes `/dev/uinput`, so run it as a
user with access to both (for example a member of the `input` group with a
suitable udev rule for uinput).

## Running

```
keyremapd config.yaml
```

With no argument it reads `config.yaml` from the current directory. If the file
cannot be read or is invalid, the error is logged and the command exits with
status 1. Press Ctrl+C to stop; grabbed devices are released and the virtual
devices removed on exit.

Output goes to two virtual devices, "Keyremapd Virtual Keyboard" and
"Keyremapd Virtual Mouse". Mouse movement and other relative axes are passed
straight through; absolute-axis events are dropped. Touchpads (devices with
multi-touch positions) are never grabbed.

## Focused-window tracking

The desktop is detected from `XDG_CURRENT_DESKTOP` (then `DESKTOP_SESSION`);
KDE Plasma is used when it mentions `kde` or `plasma`, GNOME otherwise.

- **KDE Plasma**: a KWin script is written to
  `$XDG_DATA_HOME/keyremapd/kwin-watcher.js` (or
  `~/.local/share/keyremapd/kwin-watcher.js`), loaded into KWin with `gdbus`,
  and its window-activation signals are read from `dbus-monitor`.
- **GNOME**: the focused window is asked for and followed through the
  `org.gnome.shell.extensions.FocusedWindow` D-Bus interface on
  `org.gnome.Shell`, using `gdbus`.

## Configuration

```yaml
device_names:
  - "Keyboard"
  - "Mouse"

default_layer: base

layers:
  base:
    mappings:
      - trigger: [capslock]
        action: { type: key, keys: [esc] }
      - trigger: [f1]
        action: { type: layer, layer: nav, mode: shift }
      - trigger: [ctrl, volume_up]
        action: { type: app_volume, direction: up, amount: 0.05 }
      - trigger: [mute]
        action: { type: volume, direction: mute }
      - trigger: [alt, t]
        action: { type: launch, command: "konsole" }

  nav:
    parent: base
    mappings:
      - trigger: [w]
        action: { type: key, keys: [up] }
      - trigger: [s]
        action: { type: key, keys: [down] }

  browser:
    parent: base
    mappings:
      - trigger: [mback]
        action:
          type: macro
          mode: once
          steps:
            - { keys: [alt, left], delay_ms: 20 }

profiles:
  - wm_classes: [firefox, chromium]
    layer: browser
```

- `device_names` (required): substrings matched case-insensitively against
  device names; an empty list grabs every keyboard and mouse.
- `default_layer` (required): the layer used when no profile matches.
- `layers`: each layer may name a `parent` whose mappings it inherits and
  overrides. Missing parents and inheritance cycles are reported as errors.
- `trigger`: exactly one main key plus any of `shift`, `ctrl`, `alt` (left or
  right). Other modifiers such as `super` count as a main key. A mapping
  without modifiers also applies when modifiers are held, and the held
  modifiers are sent along with its output.
- Action types:
  - `key`: `keys`, a list of modifiers and one main key;
  - `macro`: `mode` (`once`, `hold`, `toggle`) and `steps`, each with `keys`,
    optional `delay_ms` (default 0) and optional `up` (release instead of
    press; default false). Keys still pressed at the end are released;
  - `layer`: `layer` and `mode` (`shift` while held, or `toggle`);
  - `volume` and `app_volume`: `direction` (`up`, `down`, `mute`) and
    optional `amount` (fraction, default `0.1`);
  - `launch`: `command`.
- `profiles` (optional): map window classes to the layer used while such a
  window has focus.

Key names are case-insensitive: letters, digits, `f1`–`f24`, modifiers
(`ctrl`, `shift`, `alt`, `rctrl`, `rshift`, `ralt`, `super`), navigation keys,
punctuation, media keys (`play_pause`, `next_track`, `prev_track`,
`volume_up`, `volume_down`, `mute`), mouse buttons (`left_click`,
`right_click`, `middle_click`, `mback`, `mforward`), numpad keys
(`kp_0`…`kp_9`, `numpad_plus`, …) and the scroll wheel (`wheel_up`,
`wheel_down`).

## Using it from Python

- `keyremapd.config.load(path)` / `loads(text)` return a `RuntimeConfig` and
  raise `ConfigError` on invalid input; `RuntimeLayer.lookup(key_code,
  modifier_index)` finds a mapping.
- `keyremapd.keys.parse_key(name)` resolves a key name (raising
  `KeyNameError`); `compute_modifier_index(held)` gives the SHIFT|CTRL|ALT
  bitmask.
- `keyremapd.engine.run(window_updates, config)` runs the remapping loop,
  taking focused-window updates from an `asyncio.Queue`.
- `keyremapd.cli.main(argv)` is the command itself.

## What it does not do

- It tracks the focused window only on KDE Plasma and GNOME; on GNOME it
  relies on a shell extension providing the `FocusedWindow` interface, which
  this package does not ship. Without it, only the default layer is used.
- The configuration is read once at start; it is not reloaded on change.