"""Session Manager for the MCP Gateway.

Manages short-lived sessions bound to a client and the token that
authorized them. Expiry slides forward on every authenticated request and
is checked lazily on read.
"""

import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from mcp_common.logging import get_logger
from mcp_common.models import Session, utc_now
from mcp_gateway.store import InMemoryStore, KeyValueStore, sweep

logger = get_logger(__name__)


class SessionManager:
    """
    Manages MCP sessions.

    Responsibilities:
    - Create sessions for callers that already hold a validated token
    - Validate sessions, evicting expired ones
    - Slide expiry on use
    - Remove sessions on request or during sweeps
    """

    def __init__(
        self,
        timeout_minutes: float = 30,
        store: Optional[KeyValueStore[Session]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize session manager.

        Args:
            timeout_minutes: Idle time after which a session expires
            store: Backing store, in-memory by default
            clock: Source of the current time
        """
        self.timeout = timedelta(minutes=timeout_minutes)
        self._sessions = store if store is not None else InMemoryStore()
        self._clock = clock

    def create_session(self, client_id: str, access_token: str) -> Session:
        """
        Create a new session.

        The token is not re-validated here; callers check it with the
        token authority first.

        Args:
            client_id: Owning client
            access_token: Token that authorized the session

        Returns:
            New session instance
        """
        now = self._clock()

        while True:
            session = Session(
                session_id=str(uuid.uuid4()),
                client_id=client_id,
                access_token=access_token,
                creation_time=now,
                last_access_time=now,
                expires_at=now + self.timeout,
            )
            if self._sessions.put_if_absent(session.session_id, session):
                break

        logger.info(
            "Session created",
            session_id=session.session_id,
            client_id=client_id
        )
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def validate_session(self, session_id: Optional[str]) -> bool:
        """
        Check whether a session exists and has not expired.

        Expired sessions are evicted as a side effect.
        """
        if not session_id:
            return False

        session = self._sessions.get(session_id)
        if session is None:
            logger.debug("Session not found", session_id=session_id)
            return False

        now = self._clock()
        if session.is_expired(now):
            self._sessions.remove_if(session_id, lambda s: s.is_expired(now))
            logger.info("Session expired", session_id=session_id)
            return False

        return True

    def touch(self, session_id: str) -> None:
        """Slide a session's expiry forward. Unknown ids are ignored."""
        now = self._clock()
        self._sessions.replace(
            session_id,
            lambda s: s.model_copy(update={
                "last_access_time": now,
                "expires_at": now + self.timeout,
            })
        )

    def delete_session(self, session_id: str) -> None:
        """Remove a session unconditionally."""
        if self._sessions.remove(session_id) is not None:
            logger.info("Session deleted", session_id=session_id)

    def sweep_expired(self) -> int:
        """Remove every expired session. Returns the count removed."""
        now = self._clock()
        removed = sweep(self._sessions, lambda s: s.is_expired(now))
        if removed:
            logger.info("Expired sessions swept", count=removed)
        return removed

    def count(self) -> int:
        return len(self._sessions)
