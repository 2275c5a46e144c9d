"""Service entry point for tilenav.

Run locally:
    NAV_MMAP_DIR=mmaps NAV_MAP_ID=000 python -m tilenav.main

The map is loaded completely before the listener starts; any load error
exits the process with status 1.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import uvicorn

from tilenav.api import create_app
from tilenav.config import Settings
from tilenav.logging_setup import setup_logging
from tilenav.resolver import PathResolver
from tilenav.tiles import TileLoadError, load_model

logger = logging.getLogger(__name__)


def _load_local_env() -> None:
    """Load key=value pairs from local .env files if present.

    Priority (first existing file wins per key if env var was unset):
    1) tilenav/.env
    2) .env
    """
    candidates = [Path("tilenav/.env"), Path(".env")]

    for env_path in candidates:
        if not env_path.exists():
            continue

        for raw in env_path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            if not key or key in os.environ:
                continue
            os.environ[key] = value.strip().strip("'").strip('"')


def build_resolver(settings: Settings) -> PathResolver:
    """Load the configured map and wrap it in a `PathResolver`.

    Raises:
        TileLoadError: If the map cannot be loaded completely.
    """
    mesh = load_model(settings.mmap_dir, settings.map_id, settings.tile_layout())
    return PathResolver(
        mesh,
        settings.query_filter(),
        search_extent=settings.search_extent,
        max_path=settings.max_path,
        max_nodes=settings.max_nodes,
    )


def main() -> None:
    _load_local_env()
    setup_logging()

    try:
        settings = Settings.from_env()
        resolver = build_resolver(settings)
    except (TileLoadError, ValueError) as exc:
        logger.error("Startup failed: %s", exc)
        sys.exit(1)

    app = create_app(resolver, map_id=settings.map_id)
    logger.info(
        "Serving map %s on %s:%d",
        settings.map_id,
        settings.host,
        settings.port,
        extra={"map_id": settings.map_id},
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
