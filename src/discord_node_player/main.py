#!/usr/bin/env python3
"""Console entry point: check that every configured audio node is reachable."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import logging.config
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from discord_node_player.domain.shared.messages import ErrorMessages, LogTemplates

if TYPE_CHECKING:
    from discord_node_player.config.settings import NodeSettings, Settings
    from discord_node_player.domain.shared.events import EventBus

_LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"

STATS_WAIT_SECONDS: float = 5.0
CHECK_DESTROY_REASON = "Health check finished"

logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO") -> None:
    resolved_level = getattr(logging, log_level.upper(), logging.INFO)

    try:
        with open(_LOGGING_CONFIG_PATH) as f:
            config = json.load(f)
        logging.config.dictConfig(config)
    except (FileNotFoundError, json.JSONDecodeError, ValueError):
        logging.basicConfig(
            level=resolved_level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.warning("Could not load %s, falling back to basic config", _LOGGING_CONFIG_PATH)

    logging.getLogger().setLevel(resolved_level)


async def check_node(
    identifier: int, node_settings: NodeSettings, user_id: int, events: EventBus
) -> bool:
    """Connect one node, wait for its first stats frame and destroy it."""
    from discord_node_player.domain.music.events import NodeRaw
    from discord_node_player.domain.shared.exceptions import NodeError
    from discord_node_player.infrastructure.lavalink.node import Node

    node = Node(identifier, node_settings, user_id=user_id, events=events)
    stats_received = asyncio.Event()

    async def on_raw(event: NodeRaw) -> None:
        if event.node_id == identifier and event.payload.get("op") == "stats":
            stats_received.set()

    events.subscribe(NodeRaw, on_raw)
    try:
        await node.connect()
        with contextlib.suppress(TimeoutError):
            async with asyncio.timeout(STATS_WAIT_SECONDS):
                await stats_received.wait()
        logger.info(
            LogTemplates.CHECK_NODE_OK,
            identifier,
            node_settings.host,
            node_settings.port,
            node.stats.players,
            node.load,
        )
        return True
    except NodeError as e:
        logger.error(
            LogTemplates.CHECK_NODE_FAILED, identifier, node_settings.host, node_settings.port, e
        )
        return False
    finally:
        events.unsubscribe(NodeRaw, on_raw)
        await node.destroy(CHECK_DESTROY_REASON)


async def run_check(settings: Settings) -> int:
    from discord_node_player.domain.shared.events import EventBus

    if settings.user_id is None:
        logger.error(ErrorMessages.USER_ID_REQUIRED)
        return 1

    logger.info(LogTemplates.CHECK_STARTING, len(settings.nodes), settings.environment)

    events = EventBus()
    results = await asyncio.gather(
        *(
            check_node(identifier, node_settings, settings.user_id, events)
            for identifier, node_settings in enumerate(settings.nodes)
        )
    )
    return 0 if all(results) else 1


def main() -> int:
    from discord_node_player.config.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        return asyncio.run(run_check(settings))
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        logger.exception(LogTemplates.CHECK_FATAL_ERROR, e)
        return 1


def cli() -> None:
    """Console script entry point (used by pyproject.toml [project.scripts])."""
    sys.exit(main())


if __name__ == "__main__":
    cli()  # pragma: no cover
