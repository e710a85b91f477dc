"""GitHub webhook events turned into chat announcements.

Only ``push`` and ``pull_request`` events are announced. For payload
layouts see https://docs.github.com/en/webhooks/webhook-events-and-payloads
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

QueueMessage = Callable[[str, str], Awaitable[None]]

_PULL_ACTIONS = {
    "opened": "opened a new",
    "reopened": "reopened a",
    "closed": "closed a",
    "synchronize": "synchronized a",
}

_SIGNATURE_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}


@dataclass
class Commit:
    sha: str
    message: str
    by: str


@dataclass
class HookEvent:
    """The parts of a webhook event that end up in chat."""

    type: str
    repo: str
    branch: str
    by: str
    url: str
    commits: list[Commit] = field(default_factory=list)
    # pull_request only
    action: str = ""
    title: str = ""
    base_repo: str = ""
    base_branch: str = ""

    @property
    def size(self) -> int:
        return len(self.commits)


def verify_signature(secret: str, body: bytes, header: str) -> bool:
    """Check an ``X-Hub-Signature`` / ``X-Hub-Signature-256`` header.

    The header has the form ``sha1=<hex>`` or ``sha256=<hex>``.
    """
    algorithm, _, signature = header.partition("=")
    digestmod = _SIGNATURE_ALGORITHMS.get(algorithm)
    if digestmod is None or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, digestmod).hexdigest()
    return hmac.compare_digest(expected, signature)


def _first_line(text: str) -> str:
    return text.split("\n", 1)[0]


def parse_event(event_type: str, payload: dict[str, Any]) -> HookEvent | None:
    """Extract a HookEvent from a decoded webhook payload.

    Returns:
        The event, or None for event types that are not announced.

    Raises:
        ValueError: If the payload is missing fields the event type needs.
    """
    try:
        if event_type == "push":
            return HookEvent(
                type=event_type,
                repo=payload["repository"]["name"],
                branch=payload["ref"].rsplit("/", 1)[-1],
                by=payload["pusher"]["name"],
                url=payload.get("compare", ""),
                commits=[
                    Commit(
                        sha=c["id"],
                        message=c.get("message", ""),
                        by=c.get("author", {}).get("name", ""),
                    )
                    for c in payload.get("commits", [])
                ],
            )
        if event_type == "pull_request":
            pr = payload["pull_request"]
            head_repo = pr["head"].get("repo") or {}
            base_repo = pr["base"]["repo"]["name"]
            return HookEvent(
                type=event_type,
                repo=head_repo.get("name", base_repo),
                branch=pr["head"]["ref"],
                by=payload["sender"]["login"],
                url=pr.get("html_url", ""),
                action=payload["action"],
                title=pr.get("title", ""),
                base_repo=base_repo,
                base_branch=pr["base"]["ref"],
            )
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed {event_type} payload: {e}") from e
    return None


def format_push(event: HookEvent) -> list[str]:
    """A summary line plus one line per commit. Empty pushes say nothing."""
    if event.size == 0:
        return []
    lines = [
        f"[{event.repo}] **{event.by}** pushed {event.size} commit(s) "
        f"to {event.branch} ({event.url})"
    ]
    for commit in event.commits:
        lines.append(
            f"{event.repo}/{event.branch} | {commit.sha[:7]} | "
            f"**{commit.by}**: {_first_line(commit.message)}"
        )
    return lines


def format_pull(event: HookEvent) -> list[str]:
    """One line for opened/reopened/closed/synchronized pull requests."""
    phrase = _PULL_ACTIONS.get(event.action)
    if phrase is None:
        return []
    return [
        f"[{event.base_repo}] **{event.by}** {phrase} pull request: "
        f"{_first_line(event.title)} __{event.base_branch}...{event.branch}__ "
        f"({event.url})"
    ]


def format_event(event: HookEvent) -> list[str]:
    if event.type == "push":
        return format_push(event)
    if event.type == "pull_request":
        return format_pull(event)
    return []


class HookRelay:
    """Announces webhook events in the configured rooms."""

    def __init__(
        self, queue_message: QueueMessage, rooms: list[str], secret: str = ""
    ) -> None:
        """Create a relay.

        Args:
            queue_message: Coroutine function taking (text, room), normally
                ``BotClient.queue_message``.
            rooms: Rooms every announcement goes to.
            secret: Webhook secret. When set, deliveries must carry a valid
                signature header.
        """
        self._queue_message = queue_message
        self.rooms = list(rooms)
        self.secret = secret

    async def announce_event(self, event_type: str, payload: dict[str, Any]) -> int:
        """Format a webhook event and queue it for every hook room.

        Returns:
            Number of lines queued.
        """
        try:
            event = parse_event(event_type, payload)
        except ValueError as e:
            logger.warning(f"Ignoring webhook event: {e}")
            return 0
        if event is None:
            logger.debug(f"Ignoring webhook event type {event_type!r}")
            return 0

        count = 0
        for line in format_event(event):
            for room in self.rooms:
                await self._queue_message(line, room)
                count += 1
        logger.info(f"Announced {event_type} event for {event.repo} ({count} lines)")
        return count

    async def handle_delivery(
        self, event_type: str, body: bytes, signature: str | None = None
    ) -> int:
        """Announce a raw webhook delivery (request body and headers).

        Args:
            event_type: Value of the ``X-GitHub-Event`` header.
            body: Raw request body.
            signature: Value of ``X-Hub-Signature-256`` or ``X-Hub-Signature``.

        Returns:
            Number of lines queued; 0 if the delivery was rejected.
        """
        if self.secret and not verify_signature(self.secret, body, signature or ""):
            logger.warning(f"Rejected {event_type} delivery with a bad signature")
            return 0
        try:
            payload = json.loads(body)
        except ValueError as e:
            logger.warning(f"Ignoring webhook delivery with invalid JSON: {e}")
            return 0
        if not isinstance(payload, dict):
            logger.warning("Ignoring webhook delivery: payload is not an object")
            return 0
        return await self.announce_event(event_type, payload)
