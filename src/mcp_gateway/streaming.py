"""Server-to-client message queues.

Messages the server wants to push to a client outside an RPC response
(elicitation requests, for instance) wait here until the client's
``GET /mcp`` stream picks them up.
"""

import json
from collections import deque
from typing import Any

from mcp_common.logging import get_logger
from mcp_common.models import utc_now

logger = get_logger(__name__)


class SessionOutbox:
    """Per-session FIFO of pending server-to-client messages."""

    def __init__(self, max_messages: int = 100) -> None:
        self.max_messages = max_messages
        self._queues: dict[str, deque[dict[str, Any]]] = {}

    def publish(self, session_id: str, message: dict[str, Any]) -> None:
        """Queue a message; the oldest is dropped when the queue is full."""
        queue = self._queues.setdefault(session_id, deque(maxlen=self.max_messages))
        if len(queue) == queue.maxlen:
            logger.warning("Outbox full, dropping oldest message", session_id=session_id)
        queue.append(message)

    def drain(self, session_id: str) -> list[dict[str, Any]]:
        """Take every queued message for a session."""
        queue = self._queues.pop(session_id, None)
        return list(queue) if queue else []

    def pending(self, session_id: str) -> int:
        return len(self._queues.get(session_id, ()))

    def discard(self, session_id: str) -> None:
        self._queues.pop(session_id, None)


def heartbeat_line() -> str:
    return json.dumps({"type": "heartbeat", "timestamp": utc_now().isoformat()}) + "\n"


def ndjson_stream(outbox: SessionOutbox, session_id: str) -> list[str]:
    """Lines written by one ``GET /mcp`` poll: a heartbeat, then the backlog."""
    lines = [heartbeat_line()]
    lines.extend(json.dumps(message) + "\n" for message in outbox.drain(session_id))
    return lines
