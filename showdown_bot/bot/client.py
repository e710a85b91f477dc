"""Main BotClient class: one websocket session with a chat server."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterable, Callable, Coroutine

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..common.constants import WEBSOCKET_ORIGIN
from ..common.protocol import FrameDecoder, Message, MessageType, decode_payload
from ..hooks import HookRelay
from .auth import Authenticator
from .commands import CommandDispatcher, CommandTable, HandlerFunc
from .errors import TransportError
from .outbound import OutboundQueue
from .rooms import RoomRegistry
from .types import BotConfig, ConnectionState

logger = logging.getLogger(__name__)


# Type alias for event callbacks
MessageCallback = Callable[[Message], Coroutine[Any, Any, None]]


class BotClient:
    """Chat bot client for Pokemon Showdown! style servers.

    Example usage:
        async def main():
            bot = BotClient(BotConfig(nick="MyBot", rooms=["lobby"]))

            @bot.command("hello")
            def hello(ctx):
                return [f"Hello, {ctx.sender.strip()}!"]

            await bot.connect()
            await bot.run()

    The session runs three activities: the receive loop (which decodes and
    dispatches each payload inline), the outbound delivery loop with its
    keepalive, and any in-flight login request.
    """

    def __init__(self, config: BotConfig, http_session: Any = None) -> None:
        """Create a new bot client.

        Args:
            config: Bot configuration.
            http_session: Optional requests-style session for the identity
                endpoint.
        """
        self.config = config

        self.rooms = RoomRegistry()
        self.commands = CommandTable()
        self.decoder = FrameDecoder(persist_room=config.persist_room)
        self.outbound = OutboundQueue(
            maxsize=config.queue_size,
            interval=config.send_interval,
            keepalive_interval=config.keepalive_interval,
        )
        self.dispatcher = CommandDispatcher(
            self.commands, self.rooms, config.nick, config.command_char
        )
        self.authenticator = Authenticator(
            config, self.outbound, self.rooms, session=http_session
        )

        # GitHub webhook announcements, only when enabled
        self.hooks: HookRelay | None = None
        if config.enable_hooks:
            self.hooks = HookRelay(
                self.queue_message, config.hook_rooms, secret=config.hook_secret
            )

        # Network (websocket stays open for entire session)
        self._transport: Any = None
        self._auth_tasks: set[asyncio.Task[bool]] = set()

        # Running state
        self._running = False

        # Event callbacks
        self._on_message_callbacks: list[MessageCallback] = []

    @property
    def state(self) -> ConnectionState:
        return self.authenticator.state

    @property
    def running(self) -> bool:
        return self._running

    # Registration

    def command(self, name: str) -> Callable[[HandlerFunc], HandlerFunc]:
        """Decorator registering a function as a chat command."""

        def decorator(func: HandlerFunc) -> HandlerFunc:
            self.commands.register(name, func)
            return func

        return decorator

    def on_message(self, callback: MessageCallback) -> MessageCallback:
        """Decorator for every classified message, after built-in handling."""
        self._on_message_callbacks.append(callback)
        return callback

    # Connection methods

    async def connect(self, url: str | None = None) -> None:
        """Open the websocket connection.

        Args:
            url: Websocket URL. Defaults to the configured server.

        Raises:
            TransportError: If the connection cannot be established.
        """
        url = url or self.config.url
        logger.info(f"Connecting to {url}")
        try:
            transport = await websockets.connect(
                url,
                origin=WEBSOCKET_ORIGIN,
                ping_interval=None,  # Keepalive is owned by the outbound queue
            )
        except (
            OSError,
            asyncio.TimeoutError,
            InvalidURI,
            InvalidHandshake,
        ) as e:
            raise TransportError(f"Failed to connect to {url}", str(e)) from e
        self.attach(transport)

    def attach(self, transport: Any) -> None:
        """Use an already open transport for this session.

        The transport must support ``await send(str)``, ``await ping()``,
        ``await close()`` and async iteration over incoming payloads.
        """
        self._transport = transport
        self.decoder.reset()
        self.authenticator.state = ConnectionState.CONNECTED

    async def disconnect(self) -> None:
        """Close the connection."""
        self._running = False
        self.authenticator.state = ConnectionState.DISCONNECTED
        if self._transport is None:
            return
        transport, self._transport = self._transport, None
        try:
            await transport.close()
        except (OSError, WebSocketException) as e:
            logger.debug(f"Error while closing connection: {e}")

    async def run(self) -> None:
        """Run the session until the connection closes.

        Returns normally when the server closes the connection cleanly.

        Raises:
            TransportError: If the connection fails while running.
        """
        if self._transport is None:
            raise TransportError("Not connected")

        self._running = True
        self.outbound.start(self._send_line, self._ping)
        assert self.outbound.delivery_task is not None
        receiver_task = asyncio.create_task(self._receive_messages())

        try:
            done, _ = await asyncio.wait(
                {receiver_task, self.outbound.delivery_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in done:
                task.result()
            logger.info("Connection closed by server")
        finally:
            self._running = False
            receiver_task.cancel()
            try:
                await receiver_task
            except asyncio.CancelledError:
                pass
            except TransportError:
                pass  # already surfaced through `done`
            await self.outbound.stop()
            for auth_task in list(self._auth_tasks):
                auth_task.cancel()
            await self.disconnect()

    # Outbound

    async def queue_message(self, text: str, room: str) -> None:
        """Queue ``text`` for ``room`` (``user:NAME`` rooms become PMs)."""
        await self.outbound.enqueue(text, room)

    async def join_room(self, room: str) -> None:
        """Join a room and remember when we asked to."""
        await self.outbound.enqueue_line(self.rooms.record_join(room))

    async def _send_line(self, line: str) -> None:
        if self._transport is None:
            raise TransportError("Not connected")
        try:
            await self._transport.send(line)
        except (OSError, ConnectionClosed) as e:
            raise TransportError("Failed to send", str(e)) from e

    async def _ping(self) -> None:
        if self._transport is not None:
            await self._transport.ping()

    # Message handling

    async def _receive_messages(self) -> None:
        """Receive payloads and handle them one at a time, in order."""
        transport: AsyncIterable[str | bytes] = self._transport
        try:
            async for payload in transport:
                if isinstance(payload, bytes):
                    payload = self._decode_binary(payload)
                logger.debug(f"Received: {payload}")
                await self.handle_payload(payload)
        except ConnectionClosedError as e:
            raise TransportError("Connection lost", str(e)) from e
        except OSError as e:
            raise TransportError("Connection lost", str(e)) from e

    @staticmethod
    def _decode_binary(payload: bytes) -> str:
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError:
            # Undecodable bytes become U+FFFD and the lines classify as usual
            logger.warning(f"Received invalid UTF-8 payload ({len(payload)} bytes)")
            return payload.decode("utf-8", errors="replace")

    async def handle_payload(self, payload: str) -> None:
        """Decode a raw payload and handle its messages in order."""
        for msg in decode_payload(self.decoder, payload):
            await self.handle_message(msg)

    async def handle_message(self, msg: Message) -> None:
        """Route a classified message."""
        if msg.type == MessageType.CHALLSTR:
            # The login request must not stall the receive loop
            task = asyncio.create_task(self.authenticator.handle_challstr(msg))
            self._auth_tasks.add(task)
            task.add_done_callback(self._auth_tasks.discard)

        elif msg.type == MessageType.UPDATE_USER:
            await self.authenticator.handle_updateuser(msg)

        elif msg.is_chat:
            replies = self.dispatcher.dispatch(msg)
            for line in replies or []:
                await self.outbound.enqueue(line, msg.room)

        for callback in self._on_message_callbacks:
            try:
                await callback(msg)
            except Exception as e:
                logger.error(f"Error in on_message callback: {e}")

    async def wait_for_login(self) -> bool:
        """Wait for any in-flight login request.

        Returns:
            True if the bot is logged in afterwards.
        """
        if self._auth_tasks:
            await asyncio.gather(*self._auth_tasks)
        return self.state == ConnectionState.LOGGED_IN
