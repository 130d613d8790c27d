"""Command line entry point: load the configuration and run the remapper."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections.abc import Mapping, Sequence

from .config import ConfigError, RuntimeConfig, load
from .engine import run
from .watcher import WindowInfo, watch_gnome, watch_kde

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def detect_de(environ: Mapping[str, str] | None = None) -> str:
    """Return ``"kde"`` or ``"gnome"`` for the running desktop environment."""
    env = os.environ if environ is None else environ
    desktop = env.get("XDG_CURRENT_DESKTOP", "").lower()
    if "kde" in desktop or "plasma" in desktop:
        return "kde"
    if "gnome" in desktop or "unity" in desktop or "pop" in desktop:
        return "gnome"
    session = env.get("DESKTOP_SESSION", "").lower()
    if "plasma" in session or "kde" in session:
        return "kde"
    return "gnome"


async def _serve(config: RuntimeConfig, desktop: str) -> None:
    updates: asyncio.Queue[WindowInfo | None] = asyncio.Queue()
    watcher = watch_kde if desktop == "kde" else watch_gnome
    engine_task = asyncio.create_task(run(updates, config))
    watcher_task = asyncio.create_task(watcher(updates.put_nowait))
    done, pending = await asyncio.wait(
        {engine_task, watcher_task}, return_when=asyncio.FIRST_COMPLETED
    )
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    for task in done:
        error = task.exception()
        if error is not None:
            label = "Input" if task is engine_task else "Watcher"
            logger.error("%s error: %s", label, error)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the remapper with the configuration file named first on the command line."""
    logging.basicConfig(level=logging.INFO)
    args = list(sys.argv[1:] if argv is None else argv)
    config_path = args[0] if args else DEFAULT_CONFIG_PATH
    logger.debug("Loading config from: %s", config_path)

    try:
        config = load(config_path)
    except (ConfigError, OSError) as exc:
        logger.error("Cannot load config %s: %s", config_path, exc)
        return 1
    logger.debug(
        "Config loaded: %d layers, %d profiles", len(config.layers), len(config.profile_map)
    )

    desktop = detect_de()
    logger.debug("Detected desktop environment: %s", desktop)

    try:
        asyncio.run(_serve(config, desktop))
    except KeyboardInterrupt:
        logger.info("Ctrl+C received, ungrabbing devices...")
    logger.debug("Devices ungrabbed, exiting cleanly.")
    return 0


if __name__ == "__main__":
    sys.exit(main())