"""Authentication for the MCP transport.

Resolves the session a request runs under:
- An ``Mcp-Session-Id`` naming a live session is used as is
- Otherwise a valid ``Authorization: Bearer`` token creates a new session
- Otherwise the request is rejected
"""

from typing import Optional

from mcp_common.logging import get_logger
from mcp_common.models import Session
from mcp_gateway.errors import AuthenticationRequired
from mcp_gateway.oauth import TokenAuthority
from mcp_gateway.sessions import SessionManager

logger = get_logger(__name__)

SESSION_HEADER = "Mcp-Session-Id"
CHALLENGE = 'Bearer realm="MCP Server"'


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an Authorization header value.

    Returns:
        The token, or None if the header is absent or not a bearer credential
    """
    if not authorization:
        return None

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None

    token = token.strip()
    return token or None


class SessionAuthenticator:
    """Gate in front of the dispatcher."""

    def __init__(self, authority: TokenAuthority, sessions: SessionManager) -> None:
        self.authority = authority
        self.sessions = sessions

    def session_from_bearer(self, authorization: Optional[str]) -> Session:
        """
        Create a session from a bearer token.

        Raises:
            AuthenticationRequired: No token, or the token is unknown or expired
        """
        token = extract_bearer(authorization)
        if not token or not self.authority.validate_token(token):
            raise AuthenticationRequired("Authentication required")

        client_id = self.authority.client_id_for(token)
        if client_id is None:
            # Evicted between validation and lookup
            raise AuthenticationRequired("Authentication required")

        return self.sessions.create_session(client_id, token)

    def resolve(self, session_id: Optional[str], authorization: Optional[str]) -> Session:
        """
        Find or create the session for a request.

        Args:
            session_id: Value of the session header, if any
            authorization: Value of the Authorization header, if any

        Returns:
            A live session

        Raises:
            AuthenticationRequired: Neither credential is usable
        """
        if session_id and self.sessions.validate_session(session_id):
            session = self.sessions.get_session(session_id)
            if session is not None:
                return session

        session = self.session_from_bearer(authorization)
        logger.debug("Session created from bearer token", session_id=session.session_id)
        return session
