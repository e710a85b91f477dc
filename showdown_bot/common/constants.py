"""Shared constants for the chat protocol and bot defaults."""

# Connection defaults
DEFAULT_SERVER = "sim.smogon.com"
DEFAULT_PORT = 8000
WEBSOCKET_PATH = "/showdown/websocket"
WEBSOCKET_ORIGIN = "https://play.pokemonshowdown.com"

# Identity endpoint used for the challstr/assertion handshake
LOGIN_URL = "https://play.pokemonshowdown.com/action.php"
LOGIN_TIMEOUT = 10.0  # seconds

# Wire format
FIELD_SEPARATOR = "|"
LINE_SEPARATOR = "\n"
ROOM_DIRECTIVE = ">"
PRIVATE_ROOM_PREFIX = "user:"

DEFAULT_COMMAND_CHAR = "."

# Outbound pacing: the server kicks clients that flood the chat queue
SEND_INTERVAL = 0.5  # seconds between outbound lines
KEEPALIVE_INTERVAL = 60.0  # seconds between websocket pings
OUTBOUND_QUEUE_SIZE = 100
