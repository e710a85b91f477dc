"""End-to-end tests of a bot session over an in-memory transport."""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable

import pytest
import requests
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from showdown_bot.bot import BotClient, BotConfig, ConnectionState, TransportError
from showdown_bot.bot.builtin import TestCommand


class FakeTransport:
    """In-memory stand-in for a websocket connection."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[str] = []
        self.pings = 0
        self.closed = False
        self.send_error: Exception | None = None

    def feed(self, payload: str | bytes) -> None:
        self.incoming.put_nowait(payload)

    def hang_up(self) -> None:
        self.incoming.put_nowait(None)

    def fail(self, error: Exception) -> None:
        self.incoming.put_nowait(error)

    async def send(self, line: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(line)

    async def ping(self) -> None:
        self.pings += 1

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self) -> FakeTransport:
        return self

    async def __anext__(self) -> str | bytes:
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeResponse:
    def __init__(self, text: str) -> None:
        self.text = text

    def raise_for_status(self) -> None:
        pass


class FakeSession:
    """requests.Session stand-in; blocks until ``release`` is set."""

    def __init__(self, token: str) -> None:
        self.token = token
        self.release = threading.Event()
        self.release.set()
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        self.release.wait(timeout=5)
        return FakeResponse(self.token)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


def make_bot(http_session: Any = None, **overrides: Any) -> BotClient:
    values: dict[str, Any] = {
        "nick": "MyBot",
        "command_char": "!",
        "send_interval": 0,
    }
    values.update(overrides)
    bot = BotClient(BotConfig(**values), http_session=http_session)
    bot.commands.register(TestCommand())
    return bot


class TestScenarios:
    def test_command_reply(self) -> None:
        """Test a chat command gets its reply in the same room."""
        async def scenario() -> list[str]:
            bot = make_bot()
            transport = FakeTransport()
            bot.attach(transport)
            session = asyncio.create_task(bot.run())

            transport.feed(">lobby\n|c|Alice|!test")
            await wait_until(lambda: len(transport.sent) == 1)
            await asyncio.sleep(0.01)
            transport.hang_up()
            await session
            return transport.sent

        assert asyncio.run(scenario()) == ["lobby|response"]

    def test_passwordless_login(self) -> None:
        """Test challstr leads to a getassertion request and /trn line."""
        http = FakeSession("TOKEN123")

        async def scenario() -> tuple[list[str], ConnectionState]:
            bot = make_bot(http)
            transport = FakeTransport()
            bot.attach(transport)
            session = asyncio.create_task(bot.run())

            transport.feed("|challstr|4|abcd1234")
            await wait_until(lambda: bool(transport.sent))
            state = bot.state
            transport.hang_up()
            await session
            return transport.sent, state

        sent, state = asyncio.run(scenario())
        assert sent == ["|/trn MyBot,0,TOKEN123"]
        assert state == ConnectionState.LOGGED_IN

        call = http.calls[0]
        url = requests.Request("GET", call["url"], params=call["params"]).prepare().url
        assert "userid=mybot&challengekeyid=4&challenge=abcd1234" in url

    def test_auto_join(self) -> None:
        """Test a confirmed identity joins every configured room."""
        async def scenario() -> tuple[list[str], list[str]]:
            bot = make_bot(rooms=["lobby", "tech"])
            transport = FakeTransport()
            bot.attach(transport)
            session = asyncio.create_task(bot.run())

            transport.feed("|updateuser|MyBot|1")
            await wait_until(lambda: len(transport.sent) == 2)
            transport.hang_up()
            await session
            return transport.sent, bot.rooms.rooms()

        sent, rooms = asyncio.run(scenario())
        assert sent == ["|/join lobby", "|/join tech"]
        assert rooms == ["lobby", "tech"]

    def test_stale_backlog_ignored(self) -> None:
        """Test backlog from before the join is not dispatched."""
        async def scenario() -> tuple[int, int]:
            bot = make_bot()
            await bot.join_room("lobby")
            bot.outbound.get_nowait()
            joined = bot.rooms.joined_at("lobby")
            assert joined is not None

            await bot.handle_payload(f">lobby\n|c:|{joined - 100}|Alice|!test")
            stale = bot.outbound.qsize()
            await bot.handle_payload(f">lobby\n|c:|{joined}|Alice|!test")
            live = bot.outbound.qsize()
            return stale, live

        assert asyncio.run(scenario()) == (0, 1)

    def test_backpressure(self) -> None:
        """Test the 101st line waits until the queue drains."""
        async def scenario() -> tuple[bool, int]:
            bot = make_bot(queue_size=100)
            transport = FakeTransport()
            bot.attach(transport)

            for i in range(100):
                await bot.queue_message(str(i), "lobby")
            extra = asyncio.create_task(bot.queue_message("100", "lobby"))
            await asyncio.sleep(0.01)
            blocked = not extra.done()

            session = asyncio.create_task(bot.run())
            await asyncio.wait_for(extra, 1.0)
            await wait_until(lambda: len(transport.sent) == 101)
            transport.hang_up()
            await session
            return blocked, len(transport.sent)

        assert asyncio.run(scenario()) == (True, 101)


class TestSession:
    def test_dispatch_continues_during_login(self) -> None:
        """Test commands still run while the login request is blocked."""
        http = FakeSession("TOKEN")
        http.release.clear()

        async def scenario() -> tuple[ConnectionState, list[str]]:
            bot = make_bot(http)
            transport = FakeTransport()
            bot.attach(transport)
            session = asyncio.create_task(bot.run())

            transport.feed("|challstr|4|abcd")
            transport.feed(">lobby\n|c|Alice|!test")
            await wait_until(lambda: "lobby|response" in transport.sent)
            state_during = bot.state

            http.release.set()
            assert await bot.wait_for_login()
            await wait_until(lambda: len(transport.sent) == 2)
            transport.hang_up()
            await session
            return state_during, transport.sent

        state_during, sent = asyncio.run(scenario())
        assert state_during == ConnectionState.AUTHENTICATING
        assert sent == ["lobby|response", "|/trn MyBot,0,TOKEN"]

    def test_pm_reply(self) -> None:
        """Test replies to a PM go back as a PM."""
        async def scenario() -> list[str]:
            bot = make_bot()
            await bot.handle_payload("|pm| Alice| MyBot|!test")
            return [bot.outbound.get_nowait() for _ in range(bot.outbound.qsize())]

        assert asyncio.run(scenario()) == ["|/pm  Alice,response"]

    def test_own_message_ignored(self) -> None:
        """Test the bot never answers itself."""
        async def scenario() -> int:
            bot = make_bot()
            await bot.handle_payload(">lobby\n|c|+MyBot|!test")
            return bot.outbound.qsize()

        assert asyncio.run(scenario()) == 0

    def test_replies_follow_decoder_order(self) -> None:
        """Test replies are queued in the order lines were decoded."""
        async def scenario() -> list[str]:
            bot = make_bot()

            @bot.command("echo")
            def echo(ctx: Any) -> list[str]:
                return [ctx.args]

            await bot.handle_payload(
                ">lobby\n|c|A|!echo 1\n|c|B|!echo 2\n>tech\n|c|C|!echo 3"
            )
            return [bot.outbound.get_nowait() for _ in range(bot.outbound.qsize())]

        assert asyncio.run(scenario()) == ["lobby|1", "lobby|2", "tech|3"]

    def test_on_message_callback(self) -> None:
        """Test callbacks see every message and errors are contained."""
        async def scenario() -> list[str]:
            bot = make_bot()
            seen: list[str] = []

            @bot.on_message
            async def record(msg: Any) -> None:
                seen.append(msg.type)

            @bot.on_message
            async def broken(msg: Any) -> None:
                raise RuntimeError("boom")

            await bot.handle_payload(">lobby\n|J|Bob\n|c|Bob|hi\nraw")
            return seen

        assert asyncio.run(scenario()) == ["J", "c", ""]

    def test_clean_close_ends_run(self) -> None:
        """Test a clean close returns from run and closes the transport."""
        async def scenario() -> tuple[ConnectionState, bool, bool]:
            bot = make_bot()
            transport = FakeTransport()
            bot.attach(transport)
            assert bot.state == ConnectionState.CONNECTED
            transport.hang_up()
            await asyncio.wait_for(bot.run(), 1.0)
            return bot.state, transport.closed, bot.running

        assert asyncio.run(scenario()) == (ConnectionState.DISCONNECTED, True, False)

    def test_receive_failure_raises_transport_error(self) -> None:
        """Test a socket error while receiving surfaces as TransportError."""
        async def scenario() -> None:
            bot = make_bot()
            transport = FakeTransport()
            bot.attach(transport)
            transport.fail(ConnectionResetError("reset by peer"))
            await asyncio.wait_for(bot.run(), 1.0)

        with pytest.raises(TransportError, match="Connection lost"):
            asyncio.run(scenario())

    def test_send_failure_raises_transport_error(self) -> None:
        """Test a socket error while sending surfaces as TransportError."""
        async def scenario() -> None:
            bot = make_bot()
            transport = FakeTransport()
            transport.send_error = BrokenPipeError("broken")
            bot.attach(transport)
            await bot.queue_message("hello", "lobby")
            await asyncio.wait_for(bot.run(), 1.0)

        with pytest.raises(TransportError, match="Failed to send"):
            asyncio.run(scenario())

    def test_run_without_connection(self) -> None:
        """Test run refuses to start without a transport."""
        with pytest.raises(TransportError, match="Not connected"):
            asyncio.run(make_bot().run())

    def test_keepalive_pings_transport(self) -> None:
        """Test the keepalive pings the transport."""
        async def scenario() -> int:
            bot = make_bot(keepalive_interval=0.01)
            transport = FakeTransport()
            bot.attach(transport)
            session = asyncio.create_task(bot.run())
            await wait_until(lambda: transport.pings >= 2)
            transport.hang_up()
            await session
            return transport.pings

        assert asyncio.run(scenario()) >= 2

    def test_connection_closed_error_raises_transport_error(self) -> None:
        """An abnormal websocket close surfaces as TransportError."""

        async def scenario() -> None:
            bot = make_bot()
            transport = FakeTransport()
            bot.attach(transport)
            transport.fail(ConnectionClosedError(None, None))
            await asyncio.wait_for(bot.run(), 1.0)

        with pytest.raises(TransportError, match="Connection lost"):
            asyncio.run(scenario())

    def test_send_on_closed_connection_raises_transport_error(self) -> None:
        """Sending on a closed websocket surfaces as TransportError."""

        async def scenario() -> None:
            bot = make_bot()
            transport = FakeTransport()
            transport.send_error = ConnectionClosed(None, None)
            bot.attach(transport)
            await bot.queue_message("hello", "lobby")
            await asyncio.wait_for(bot.run(), 1.0)

        with pytest.raises(TransportError, match="Failed to send"):
            asyncio.run(scenario())

    def test_invalid_utf8_payload_does_not_end_session(self) -> None:
        """Undecodable binary frames are handled and later payloads still run."""

        async def scenario() -> tuple[list[str], bool]:
            bot = make_bot()
            transport = FakeTransport()
            bot.attach(transport)
            session = asyncio.create_task(bot.run())

            transport.feed(b"\xff\xfe|c|Alice|!test")
            transport.feed(">lobby\n|c|Alice|!test")
            await wait_until(lambda: len(transport.sent) == 1)
            transport.hang_up()
            await session
            return transport.sent, transport.closed

        assert asyncio.run(scenario()) == (["lobby|response"], True)

    def test_binary_payload_is_decoded(self) -> None:
        """Valid UTF-8 binary frames are handled like text frames."""

        async def scenario() -> list[str]:
            bot = make_bot()
            transport = FakeTransport()
            bot.attach(transport)
            session = asyncio.create_task(bot.run())

            transport.feed(">lobby\n|c|Alice|!test".encode("utf-8"))
            await wait_until(lambda: len(transport.sent) == 1)
            transport.hang_up()
            await session
            return transport.sent

        assert asyncio.run(scenario()) == ["lobby|response"]


class TestHookWiring:
    def test_hooks_disabled_by_default(self) -> None:
        """No relay exists unless enable_hooks is set."""
        assert make_bot().hooks is None

    def test_enabled_relay_uses_config(self) -> None:
        """The relay announces to hook_rooms and checks hook_secret."""
        body = b'{"ref": "refs/heads/main"}'

        async def scenario() -> tuple[int, int, list[str]]:
            bot = make_bot(enable_hooks=True, hook_rooms=["dev"], hook_secret="s3")
            assert bot.hooks is not None
            rejected = await bot.hooks.handle_delivery("push", body, "sha256=bad")
            pushed = await bot.hooks.announce_event(
                "pull_request",
                {
                    "action": "opened",
                    "number": 1,
                    "sender": {"login": "alice"},
                    "pull_request": {
                        "title": "Fix it",
                        "html_url": "https://example.com/pr/1",
                        "base": {"ref": "main", "repo": {"name": "gobot"}},
                        "head": {"ref": "fix", "repo": {"name": "gobot"}},
                    },
                },
            )
            return rejected, pushed, [
                bot.outbound.get_nowait() for _ in range(bot.outbound.qsize())
            ]

        rejected, pushed, lines = asyncio.run(scenario())
        assert rejected == 0
        assert pushed == 1
        assert lines[0].startswith("dev|[gobot] **alice** opened a new pull request")
