"""Bot SDK for Pokemon Showdown! chat bots.

Example usage:

    from showdown_bot.bot import BotClient, BotConfig

    async def main():
        bot = BotClient(BotConfig(nick="GuardBot", rooms=["lobby"]))

        @bot.command("roll")
        def roll(ctx):
            return [f"{ctx.sender.strip()} rolled {random.randint(1, 6)}"]

        await bot.connect()
        await bot.run()

    asyncio.run(main())
"""

from .auth import Authenticator
from .builtin import load_commands
from .client import BotClient
from .commands import Command, CommandDispatcher, CommandTable, FunctionCommand
from .errors import AuthenticationError, BotError, ConfigError, TransportError
from .outbound import OutboundQueue
from .rooms import RoomRegistry
from .types import BotConfig, CommandContext, ConnectionState

__all__ = [
    "AuthenticationError",
    "Authenticator",
    "BotClient",
    "BotConfig",
    "BotError",
    "Command",
    "CommandContext",
    "CommandDispatcher",
    "CommandTable",
    "ConfigError",
    "ConnectionState",
    "FunctionCommand",
    "OutboundQueue",
    "RoomRegistry",
    "TransportError",
    "load_commands",
]
