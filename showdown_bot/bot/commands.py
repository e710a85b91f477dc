"""Command table and dispatch of chat commands.

A chat line is a command when it starts with the configured command
character followed directly by a registered command name:

    ".roll 2d6"  ->  command "roll", args "2d6"

Unknown commands are ignored, not reported.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Union

from ..common.protocol import Message, MessageType, to_id
from .rooms import RoomRegistry
from .types import CommandContext

logger = logging.getLogger(__name__)

_COMMAND_WORD = re.compile(r"\S*")

HandlerResult = Union[Iterable[str], str, None]
HandlerFunc = Callable[[CommandContext], HandlerResult]


class Command(ABC):
    """Base class for command handlers.

    ``execute`` returns the lines to send back to the room (or PM) the
    command came from. Handlers must not touch connection or room state.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Command name (case-sensitive, no command character)."""
        ...

    @property
    def help_text(self) -> str:
        return ""

    @abstractmethod
    def execute(self, ctx: CommandContext) -> HandlerResult:
        ...


class FunctionCommand(Command):
    """Adapts a plain function to the Command interface."""

    def __init__(self, name: str, func: HandlerFunc, help_text: str = "") -> None:
        self._name = name
        self._func = func
        self._help_text = help_text or (func.__doc__ or "").strip()

    @property
    def name(self) -> str:
        return self._name

    @property
    def help_text(self) -> str:
        return self._help_text

    def execute(self, ctx: CommandContext) -> HandlerResult:
        return self._func(ctx)


class CommandTable:
    """Registry mapping command names to handlers."""

    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}

    def register(self, name_or_command: str | Command, func: HandlerFunc | None = None) -> Command:
        """Register a Command instance, or a function under a name.

        Raises:
            ValueError: If the name is empty, contains whitespace, or is
                already registered.
        """
        if isinstance(name_or_command, Command):
            command = name_or_command
        else:
            if func is None:
                raise ValueError(f"No handler given for command '{name_or_command}'")
            command = FunctionCommand(name_or_command, func)

        name = command.name
        if not name or _COMMAND_WORD.fullmatch(name) is None:
            raise ValueError(f"Invalid command name: {name!r}")
        if name in self._commands:
            raise ValueError(f"Command name collision: '{name}' is already registered")
        self._commands[name] = command
        return command

    def get(self, name: str) -> Command | None:
        return self._commands.get(name)

    def names(self) -> list[str]:
        return sorted(self._commands)

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    def __len__(self) -> int:
        return len(self._commands)


class CommandDispatcher:
    """Decides whether a chat message runs a command, and runs it."""

    def __init__(
        self,
        table: CommandTable,
        rooms: RoomRegistry,
        nick: str,
        command_char: str,
    ) -> None:
        self.table = table
        self.rooms = rooms
        self.nick = nick
        self.command_char = command_char

    def get_command(self, text: str) -> str:
        """Return the command word in ``text``, or "" if there is none."""
        if not text.startswith(self.command_char):
            return ""
        match = _COMMAND_WORD.match(text, len(self.command_char))
        return match.group() if match else ""

    def dispatch(self, msg: Message) -> list[str] | None:
        """Run the command named in ``msg``, if any.

        Returns:
            The handler's reply lines, or None if no command ran.
        """
        if not msg.is_chat:
            return None

        cmd = self.get_command(msg.text)
        if not cmd:
            return None

        # Never react to our own lines
        if to_id(msg.sender) == to_id(self.nick):
            return None

        command = self.table.get(cmd)
        if command is None:
            return None

        if msg.type == MessageType.CHAT_TIMESTAMPED:
            timestamp = msg.timestamp or 0
            if self.rooms.is_stale(msg.room, timestamp):
                logger.debug(f"Skipping stale command {cmd!r} in {msg.room!r}")
                return None

        args = msg.text[len(self.command_char) + len(cmd) :].strip()
        ctx = CommandContext(room=msg.room, args=args, sender=msg.sender, message=msg)
        logger.info(f"Running command {cmd!r} for {msg.sender.strip()} in {msg.room!r}")

        try:
            result = command.execute(ctx)
        except Exception as e:
            logger.error(f"Error in command {cmd!r}: {e}")
            return []

        if result is None:
            return []
        if isinstance(result, str):
            return [result]
        return list(result)
