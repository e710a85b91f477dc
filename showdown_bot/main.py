"""Bot entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .bot import BotClient, load_commands
from .bot.errors import ConfigError, TransportError
from .config import DEFAULT_CONFIG_PATH, load_config

logger = logging.getLogger("showdown_bot")


def setup_logging(log_file: str | None, debug: bool = False) -> None:
    """Configure logging to console, and to a file if one is given."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
    # Suppress noisy library debug logs
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    if log_file:
        logger.info(">>> BEGIN LOGGING <<<")


async def run_bot(bot: BotClient) -> None:
    await bot.connect()
    await bot.run()


def main() -> None:
    parser = argparse.ArgumentParser(description="Pokemon Showdown! chat bot")
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG_PATH),
        help="Config file path (default: ./config.yaml)",
    )
    parser.add_argument("--log", help="Also log to this file")
    parser.add_argument("--debug", action="store_true", help="Log every payload")
    args = parser.parse_args()

    setup_logging(args.log, args.debug)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    bot = BotClient(config)
    load_commands(bot.commands, config.command_char)

    try:
        asyncio.run(run_bot(bot))
    except TransportError as e:
        logger.error(f"Session ended: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nBot stopped")


if __name__ == "__main__":
    main()
