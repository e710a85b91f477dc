#!/usr/bin/env python3
"""Example bot with a custom command and webhook announcements.

The bot:
- Answers .roll [sides] with a random number
- Greets users who PM it
- Announces GitHub webhook payloads given on the command line once logged in

Usage:
    python examples/announce_bot.py [--config CONFIG] [--event TYPE PAYLOAD.json ...]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
from pathlib import Path

from showdown_bot.bot import BotClient, CommandContext, ConnectionState, load_commands
from showdown_bot.common.protocol import Message, MessageType, to_id
from showdown_bot.config import load_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("announce_bot")
# Silence noisy loggers
logging.getLogger("websockets").setLevel(logging.WARNING)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Announcing bot for Showdown")
    parser.add_argument("--config", default="config.yaml", help="Config file")
    parser.add_argument(
        "--event",
        nargs=2,
        action="append",
        default=[],
        metavar=("TYPE", "PAYLOAD"),
        help="Webhook event type and JSON payload file to announce",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    bot = BotClient(config)
    load_commands(bot.commands, config.command_char)

    @bot.command("roll")
    def roll(ctx: CommandContext) -> list[str]:
        """roll [sides] - roll a die (default 6 sides)"""
        sides = int(ctx.args) if ctx.args.isdigit() and int(ctx.args) > 0 else 6
        return [f"{ctx.sender.strip()} rolled {random.randint(1, sides)} (d{sides})"]

    greeted: set[str] = set()

    @bot.on_message
    async def on_message(msg: Message) -> None:
        """Say hello the first time someone PMs us."""
        if msg.type != MessageType.PRIVATE_MESSAGE or msg.room in greeted:
            return
        # The server echoes our own PMs back to us
        if to_id(msg.sender) != to_id(config.nick):
            greeted.add(msg.room)
            await bot.queue_message("Hi! Try .help", msg.room)

    events = [(event_type, json.loads(Path(path).read_text())) for event_type, path in args.event]
    if events and bot.hooks is None:
        logger.warning("enable_hooks is off in the config, not announcing events")
        events = []

    logger.info(f"Connecting to {config.url} as {config.nick}...")
    await bot.connect()

    async def announce_when_logged_in() -> None:
        while bot.state != ConnectionState.LOGGED_IN:
            await asyncio.sleep(1.0)
        for event_type, payload in events:
            await bot.hooks.announce_event(event_type, payload)

    announce_task = asyncio.create_task(announce_when_logged_in())

    try:
        await bot.run()
    finally:
        announce_task.cancel()
        try:
            await announce_task
        except asyncio.CancelledError:
            pass


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
