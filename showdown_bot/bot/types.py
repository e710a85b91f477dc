"""Type definitions for the bot."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..common.constants import (
    DEFAULT_COMMAND_CHAR,
    DEFAULT_PORT,
    DEFAULT_SERVER,
    KEEPALIVE_INTERVAL,
    LOGIN_URL,
    OUTBOUND_QUEUE_SIZE,
    SEND_INTERVAL,
    WEBSOCKET_PATH,
)
from ..common.protocol import Message
from .errors import ConfigError


class ConnectionState(Enum):
    """Session connection states."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    AWAITING_IDENTITY = "awaiting_identity"
    AUTHENTICATING = "authenticating"
    LOGGED_IN = "logged_in"


@dataclass
class BotConfig:
    """Configuration for a BotClient."""

    nick: str
    password: str = ""
    server: str = DEFAULT_SERVER
    port: int = DEFAULT_PORT
    command_char: str = DEFAULT_COMMAND_CHAR
    rooms: list[str] = field(default_factory=list)  # Auto-join on login
    login_url: str = LOGIN_URL

    # GitHub webhook relay
    enable_hooks: bool = False
    hook_rooms: list[str] = field(default_factory=list)
    hook_secret: str = ""

    # Session tuning
    persist_room: bool = False  # Carry >room context across payloads
    send_interval: float = SEND_INTERVAL
    keepalive_interval: float = KEEPALIVE_INTERVAL
    queue_size: int = OUTBOUND_QUEUE_SIZE

    def __post_init__(self) -> None:
        if not self.nick:
            raise ConfigError("nick must be set")
        if len(self.command_char) != 1 or self.command_char.isspace():
            raise ConfigError(
                "command_char must be a single non-whitespace character",
                details=repr(self.command_char),
            )
        if self.queue_size <= 0:
            raise ConfigError("queue_size must be positive", details=str(self.queue_size))

    @property
    def url(self) -> str:
        """Websocket URL for the configured server."""
        return f"ws://{self.server}:{self.port}{WEBSOCKET_PATH}"


@dataclass
class CommandContext:
    """What a command handler gets to see about an invocation."""

    room: str
    args: str  # Text after the command word, whitespace-trimmed
    sender: str
    message: Message
