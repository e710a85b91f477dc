"""Exception classes for the bot."""

from __future__ import annotations


class BotError(Exception):
    """Base exception for all bot errors."""

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize BotError with message and optional details.

        Args:
            message: Error message.
            details: Optional additional error details.
        """
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class TransportError(BotError):
    """Raised when the websocket connection fails or is lost.

    Ends the current session; restarting is up to the caller.
    """


class AuthenticationError(BotError):
    """Raised when the login handshake fails. Recoverable."""


class ConfigError(BotError):
    """Raised when the configuration is missing or invalid."""
