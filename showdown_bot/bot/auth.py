"""Challenge/assertion login handshake.

The server sends ``|challstr|KEYID|CHALLENGE`` after connecting. The bot
trades it for a signed assertion at the identity endpoint and confirms its
name with ``/trn NICK,0,ASSERTION``.

NOTE: the endpoint does not behave the way the protocol documentation
describes for unregistered names. Without a password, a GET with
``act=getassertion`` must be used, and the response body *is* the assertion
(no ``]`` prefix, no JSON). With a password, the POST ``act=login`` response
is ``]`` followed by a JSON object holding the assertion.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import requests

from ..common.constants import LOGIN_TIMEOUT
from ..common.protocol import Message, format_trn, to_id
from .errors import AuthenticationError
from .outbound import OutboundQueue
from .rooms import RoomRegistry
from .types import BotConfig, ConnectionState

logger = logging.getLogger(__name__)

# The endpoint prefixes JSON responses with this character
RESPONSE_PREFIX = "]"
# ...and reports failures in a plain body starting with this one
ERROR_PREFIX = ";"


class Authenticator:
    """Drives the connection state through the login handshake."""

    def __init__(
        self,
        config: BotConfig,
        outbound: OutboundQueue,
        rooms: RoomRegistry,
        session: Any = None,
        timeout: float = LOGIN_TIMEOUT,
    ) -> None:
        """Create an authenticator.

        Args:
            config: Bot configuration (nick, password, login URL, rooms).
            outbound: Queue the /trn and /join lines are sent through.
            rooms: Registry that records auto-joins.
            session: Object with requests-style ``get``/``post``. Defaults to
                a new ``requests.Session``.
            timeout: Identity request timeout in seconds.
        """
        self.config = config
        self.outbound = outbound
        self.rooms = rooms
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.state = ConnectionState.DISCONNECTED

    async def handle_challstr(self, msg: Message) -> bool:
        """Log in using the challenge in a |challstr| message.

        Returns:
            True if the /trn line was queued, False on failure.
        """
        if self.state == ConnectionState.AUTHENTICATING:
            logger.warning("Ignoring challstr: a login request is already running")
            return False

        key_id, challenge = msg.fields[0], msg.fields[1]
        self.state = ConnectionState.AUTHENTICATING
        logger.info(f"Logging in as {self.config.nick}")

        try:
            token = await asyncio.to_thread(self.request_assertion, key_id, challenge)
        except AuthenticationError as e:
            logger.error(f"Login failed: {e}")
            self.state = ConnectionState.CONNECTED
            return False

        await self.outbound.enqueue_line(format_trn(self.config.nick, token))
        self.state = ConnectionState.LOGGED_IN
        logger.info(f"Sent identity confirmation for {self.config.nick}")
        return True

    async def handle_updateuser(self, msg: Message) -> bool:
        """Handle an |updateuser| message.

        When the server reports the identity as authenticated, every
        configured room is joined.

        Returns:
            True if the identity is confirmed.
        """
        named = len(msg.fields) > 1 and msg.fields[1] == "1"
        if not named:
            if self.state == ConnectionState.LOGGED_IN:
                logger.warning("Server did not accept our identity")
                self.state = ConnectionState.AWAITING_IDENTITY
            return False

        self.state = ConnectionState.LOGGED_IN
        for room in self.config.rooms:
            await self.outbound.enqueue_line(self.rooms.record_join(room))
        if self.config.rooms:
            logger.info(f"Joining rooms: {', '.join(self.config.rooms)}")
        return True

    def request_assertion(self, key_id: str, challenge: str) -> str:
        """Fetch a login assertion from the identity endpoint (blocking).

        Raises:
            AuthenticationError: On network errors, timeouts, non-success
                status codes, or a response without an assertion.
        """
        try:
            if not self.config.password:
                response = self.session.get(
                    self.config.login_url,
                    params={
                        "act": "getassertion",
                        "userid": to_id(self.config.nick),
                        "challengekeyid": key_id,
                        "challenge": challenge,
                    },
                    timeout=self.timeout,
                )
            else:
                response = self.session.post(
                    self.config.login_url,
                    data={
                        "act": "login",
                        "name": self.config.nick,
                        "pass": self.config.password,
                        "challengekeyid": key_id,
                        "challenge": challenge,
                    },
                    timeout=self.timeout,
                )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise AuthenticationError("Identity request timed out", str(e)) from e
        except requests.exceptions.RequestException as e:
            raise AuthenticationError("Identity request failed", str(e)) from e

        return self.parse_assertion(response.text)

    def parse_assertion(self, body: str) -> str:
        """Extract the assertion from an identity endpoint response body."""
        if not self.config.password:
            token = body.strip()
        else:
            try:
                data = json.loads(body[len(RESPONSE_PREFIX) :])
            except ValueError as e:
                raise AuthenticationError("Malformed login response", str(e)) from e
            if not isinstance(data, dict):
                raise AuthenticationError("Malformed login response", body[:100])
            token = str(data.get("assertion") or data.get("Assertion") or "")

        if not token:
            raise AuthenticationError("Login response has no assertion")
        if token.startswith(ERROR_PREFIX):
            raise AuthenticationError("Login rejected", token.lstrip(ERROR_PREFIX))
        return token
