"""Commands every bot ships with."""

from __future__ import annotations

from .commands import Command, CommandTable
from .types import CommandContext


class TestCommand(Command):
    """Liveness check: answers with a fixed reply."""

    __test__ = False  # not a pytest test class

    @property
    def name(self) -> str:
        return "test"

    @property
    def help_text(self) -> str:
        return "test - check that the bot is listening"

    def execute(self, ctx: CommandContext) -> list[str]:
        return ["response"]


class HelpCommand(Command):
    """Lists the registered commands."""

    def __init__(self, table: CommandTable, command_char: str) -> None:
        self._table = table
        self._command_char = command_char

    @property
    def name(self) -> str:
        return "help"

    @property
    def help_text(self) -> str:
        return "help [command] - list commands, or describe one"

    def execute(self, ctx: CommandContext) -> list[str]:
        if ctx.args:
            command = self._table.get(ctx.args.lstrip(self._command_char))
            if command is None:
                return [f"Unknown command: {ctx.args}"]
            return [command.help_text or f"{command.name} has no description"]
        names = ", ".join(self._command_char + name for name in self._table.names())
        return [f"Commands: {names}"]


def load_commands(table: CommandTable, command_char: str) -> None:
    """Register the built-in commands."""
    table.register(TestCommand())
    table.register(HelpCommand(table, command_char))
