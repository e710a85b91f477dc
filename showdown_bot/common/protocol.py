"""Chat protocol framing and message classification.

Wire format (one websocket text payload):
    >ROOMID                     (optional room directive)
    |TYPE|FIELD|FIELD|...       (one message per line)

See https://github.com/smogon/pokemon-showdown/blob/master/PROTOCOL.md
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .constants import (
    FIELD_SEPARATOR,
    LINE_SEPARATOR,
    PRIVATE_ROOM_PREFIX,
    ROOM_DIRECTIVE,
)

_ID_PATTERN = re.compile(r"[^a-z0-9]+")


class MessageType:
    """Type tags the bot cares about. Any other server tag passes through."""

    UNRECOGNIZED = ""
    CHALLSTR = "challstr"
    CHAT = "c"
    CHAT_TIMESTAMPED = "c:"
    CHAT_LONG = "chat"
    PRIVATE_MESSAGE = "pm"
    UPDATE_USER = "updateuser"


CHAT_TYPES = frozenset(
    {
        MessageType.CHAT,
        MessageType.CHAT_TIMESTAMPED,
        MessageType.CHAT_LONG,
        MessageType.PRIVATE_MESSAGE,
    }
)


@dataclass(frozen=True)
class Message:
    """A single classified protocol line."""

    room: str
    raw: str
    type: str
    fields: tuple[str, ...]

    @property
    def is_chat(self) -> bool:
        return self.type in CHAT_TYPES

    @property
    def sender(self) -> str:
        """Sender name of a chat or PM message."""
        return self.fields[0] if self.is_chat else ""

    @property
    def text(self) -> str:
        """Message body of a chat or PM message."""
        return self.fields[1] if self.is_chat else ""

    @property
    def timestamp(self) -> int | None:
        """Server timestamp of a |c:| message, or None.

        An unparseable timestamp is reported as 0 so that it is treated as
        older than any recorded join.
        """
        if self.type != MessageType.CHAT_TIMESTAMPED:
            return None
        try:
            return int(self.fields[2])
        except ValueError:
            return 0


def to_id(name: str) -> str:
    """Convert a user or room name to its id form.

    The id is the lower-cased name with every non-alphanumeric character
    removed, e.g. "My Bot!" -> "mybot".
    """
    return _ID_PATTERN.sub("", name.lower())


def private_room(user: str) -> str:
    """Synthetic room key used for private messages with a user."""
    return PRIVATE_ROOM_PREFIX + user


def is_private_room(room: str) -> bool:
    return room.startswith(PRIVATE_ROOM_PREFIX)


# Frame decoding


class FrameDecoder:
    """Splits raw payloads into (room, line) pairs.

    The room set by a ``>room`` directive applies to the lines that follow
    it. ``current_room`` is kept on the decoder so the policy for payloads
    without a directive is explicit:

    - ``persist_room=False`` (default): every payload starts in the global
      room (""). The server prefixes each room-scoped payload with its own
      directive, so a payload without one belongs to the global context.
    - ``persist_room=True``: the last room seen carries over into the next
      payload.
    """

    def __init__(self, persist_room: bool = False) -> None:
        self.persist_room = persist_room
        self.current_room = ""

    def decode(self, payload: str) -> list[tuple[str, str]]:
        """Decode one payload into an ordered list of (room, line) pairs."""
        if not self.persist_room:
            self.current_room = ""

        frames: list[tuple[str, str]] = []
        for line in payload.split(LINE_SEPARATOR):
            if line.startswith(ROOM_DIRECTIVE):
                self.current_room = line[len(ROOM_DIRECTIVE) :]
                continue
            frames.append((self.current_room, line))
        return frames

    def reset(self) -> None:
        """Forget the current room (used when a session starts)."""
        self.current_room = ""


def split_frames(payload: str) -> list[tuple[str, str]]:
    """Decode a single payload with the default (non-persistent) policy."""
    return FrameDecoder().decode(payload)


# Classification


def _unrecognized(room: str, raw: str) -> Message:
    return Message(room=room, raw=raw, type=MessageType.UNRECOGNIZED, fields=(raw,))


def classify(room: str, raw: str) -> Message:
    """Classify one room-scoped line into a Message.

    Never raises: lines that do not fit the expected layout for their tag are
    returned as unrecognized.
    """
    sep = FIELD_SEPARATOR
    if not raw.startswith(sep) or raw.startswith(sep * 2):
        return _unrecognized(room, raw)

    tokens = raw.split(sep)
    msg_type = tokens[1]

    if msg_type == MessageType.CHALLSTR:
        if len(tokens) < 4:
            return _unrecognized(room, raw)
        fields: tuple[str, ...] = (tokens[2], sep.join(tokens[3:]))

    elif msg_type in (MessageType.CHAT, MessageType.CHAT_LONG):
        # Chat text may itself contain the separator
        if len(tokens) < 4:
            return _unrecognized(room, raw)
        fields = (tokens[2], sep.join(tokens[3:]))

    elif msg_type == MessageType.CHAT_TIMESTAMPED:
        # |c:|TIMESTAMP|USER|MESSAGE -- timestamp kept last for staleness checks
        if len(tokens) < 5:
            return _unrecognized(room, raw)
        fields = (tokens[3], sep.join(tokens[4:]), tokens[2])

    elif msg_type == MessageType.PRIVATE_MESSAGE:
        # |pm|SENDER|RECEIVER|MESSAGE -- the receiver is always us
        if len(tokens) < 5:
            return _unrecognized(room, raw)
        sender = tokens[2]
        fields = (sender, sep.join(tokens[4:]))
        room = private_room(sender)

    else:
        fields = tuple(tokens[2:])

    return Message(room=room, raw=raw, type=msg_type, fields=fields)


def decode_payload(decoder: FrameDecoder, payload: str) -> list[Message]:
    """Decode and classify every line of a payload, in order."""
    return [classify(room, line) for room, line in decoder.decode(payload)]


# Outbound line formatting


def format_outbound(text: str, room: str) -> str:
    """Build the wire line that sends ``text`` to ``room``.

    Private-message rooms are turned into a /pm to the user; everything else
    is prefixed with the room id.
    """
    if is_private_room(room):
        user = room[len(PRIVATE_ROOM_PREFIX) :]
        return f"{FIELD_SEPARATOR}/pm {user},{text}"
    return f"{room}{FIELD_SEPARATOR}{text}"


def format_join(room: str) -> str:
    """Wire line requesting to join a room (sent in the global context)."""
    return format_outbound(f"/join {room}", "")


def format_trn(nick: str, token: str) -> str:
    """Wire line confirming our identity with a login assertion."""
    return format_outbound(f"/trn {nick},0,{token}", "")
