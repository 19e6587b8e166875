"""Token authority for the MCP Gateway.

Handles:
- Dynamic client registration (RFC 7591)
- Client-credentials token issuance (signed JWT bearer tokens)
- Token validation with lazy expiry
- Authorization server metadata (RFC 8414)

Client secrets and tokens are credentials. They are compared in constant
time and never written to logs or error messages.
"""

import hmac
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from jose import jwt

from mcp_common.config import OAuthSettings
from mcp_common.logging import get_logger
from mcp_common.models import (
    DEFAULT_AUTH_METHOD,
    DEFAULT_GRANT_TYPES,
    DEFAULT_RESPONSE_TYPES,
    DEFAULT_SCOPE,
    ClientRegistration,
    ClientRegistrationRequest,
    IssuedToken,
    OAuthMetadata,
    TokenRequest,
    TokenResponse,
    utc_now,
)
from mcp_gateway.errors import ClientRegistrationError, ConfigurationError, TokenIssuanceError
from mcp_gateway.store import InMemoryStore, KeyValueStore, sweep

logger = get_logger(__name__)

ALGORITHM = "HS256"
MIN_SECRET_BYTES = 32  # 256 bits for HS256

PLACEHOLDER_PREFIXES = ("changeme", "change-me", "change_me")
PLACEHOLDER_VALUES = {"secret", "jwt-secret", "your-secret-key"}


def validate_signing_secret(secret: Optional[str]) -> str:
    """
    Reject signing secrets that are missing, placeholders or too short.

    Raises:
        ConfigurationError: The secret is unusable
    """
    if not secret:
        raise ConfigurationError("JWT signing secret is not configured")

    lowered = secret.strip().lower()
    if lowered.startswith(PLACEHOLDER_PREFIXES) or lowered in PLACEHOLDER_VALUES:
        raise ConfigurationError("JWT signing secret is a placeholder value")

    if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
        raise ConfigurationError(
            f"JWT signing secret must be at least {MIN_SECRET_BYTES} bytes"
        )

    return secret


def _secrets_match(expected: str, provided: Optional[str]) -> bool:
    if provided is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


class TokenAuthority:
    """
    Registers clients and mints and validates bearer tokens.

    Clients live for the process lifetime. Tokens are evicted when a
    validation finds them expired, or by ``sweep_expired``.
    """

    def __init__(
        self,
        issuer: str,
        signing_secret: Optional[str],
        token_ttl_seconds: int = 3600,
        clients: Optional[KeyValueStore[ClientRegistration]] = None,
        tokens: Optional[KeyValueStore[IssuedToken]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._signing_secret = validate_signing_secret(signing_secret)
        self.issuer = issuer.rstrip("/")
        self.token_ttl = timedelta(seconds=token_ttl_seconds)
        self._clients = clients if clients is not None else InMemoryStore()
        self._tokens = tokens if tokens is not None else InMemoryStore()
        self._clock = clock

        logger.info("Token authority initialized", issuer=self.issuer)

    @classmethod
    def from_settings(
        cls,
        settings: OAuthSettings,
        clock: Callable[[], datetime] = utc_now
    ) -> "TokenAuthority":
        return cls(
            issuer=settings.issuer,
            signing_secret=settings.jwt_secret,
            token_ttl_seconds=settings.token_expiration_seconds,
            clock=clock,
        )

    def discovery_metadata(self) -> OAuthMetadata:
        """Authorization server metadata derived from the issuer URL."""
        return OAuthMetadata(
            issuer=self.issuer,
            authorization_endpoint=f"{self.issuer}/oauth/authorize",
            token_endpoint=f"{self.issuer}/oauth/token",
            registration_endpoint=f"{self.issuer}/oauth/register",
            jwks_uri=f"{self.issuer}/.well-known/jwks.json",
            response_types_supported=["code"],
            grant_types_supported=["authorization_code", "refresh_token", "client_credentials"],
            token_endpoint_auth_methods_supported=["client_secret_basic", "client_secret_post"],
            scopes_supported=["mcp", "read", "write"],
            # Advertised for interoperability; PKCE is not enforced
            code_challenge_methods_supported=["S256", "plain"],
        )

    def register_client(self, request: ClientRegistrationRequest) -> ClientRegistration:
        """
        Register a new client.

        Args:
            request: Registration metadata; only the name is required

        Returns:
            The registration including generated credentials

        Raises:
            ClientRegistrationError: The client name is empty
        """
        if not request.client_name or not request.client_name.strip():
            raise ClientRegistrationError("Client name is required")

        while True:
            registration = ClientRegistration(
                client_id=f"client_{uuid.uuid4().hex[:16]}",
                client_secret=f"secret_{secrets.token_urlsafe(32)}",
                client_name=request.client_name,
                redirect_uris=request.redirect_uris or [],
                grant_types=request.grant_types or list(DEFAULT_GRANT_TYPES),
                response_types=request.response_types or list(DEFAULT_RESPONSE_TYPES),
                scope=request.scope or DEFAULT_SCOPE,
                token_endpoint_auth_method=request.token_endpoint_auth_method or DEFAULT_AUTH_METHOD,
                client_id_issued_at=int(self._clock().timestamp()),
            )
            if self._clients.put_if_absent(registration.client_id, registration):
                break

        logger.info(
            "Client registered",
            client_id=registration.client_id,
            client_name=registration.client_name
        )
        return registration

    def get_client(self, client_id: str) -> Optional[ClientRegistration]:
        return self._clients.get(client_id)

    def issue_token(self, request: TokenRequest) -> TokenResponse:
        """
        Issue an access token for a client.

        Args:
            request: Grant type and client credentials

        Returns:
            Bearer token response

        Raises:
            TokenIssuanceError: Missing grant type, unknown client or wrong secret
        """
        if not request.grant_type:
            raise TokenIssuanceError("Grant type is required")

        client = self._clients.get(request.client_id) if request.client_id else None
        if client is None or not _secrets_match(client.client_secret, request.client_secret):
            logger.warning("Token request rejected", client_id=request.client_id)
            raise TokenIssuanceError("Invalid client credentials", error="invalid_client")

        now = self._clock()
        expires_at = now + self.token_ttl
        scope = request.scope or client.scope

        access_token = jwt.encode(
            {
                "sub": client.client_id,
                "iss": self.issuer,
                "iat": int(now.timestamp()),
                "exp": int(expires_at.timestamp()),
                "jti": uuid.uuid4().hex,
                "scope": scope,
            },
            self._signing_secret,
            algorithm=ALGORITHM,
        )

        self._tokens.put(access_token, IssuedToken(
            access_token=access_token,
            client_id=client.client_id,
            scope=scope,
            issued_at=now,
            expires_at=expires_at,
        ))

        logger.info(
            "Token issued",
            client_id=client.client_id,
            grant_type=request.grant_type,
            expires_at=expires_at.isoformat()
        )

        return TokenResponse(
            access_token=access_token,
            token_type="Bearer",
            expires_in=int(self.token_ttl.total_seconds()),
            # Not redeemable; issued for client compatibility
            refresh_token=f"refresh_{uuid.uuid4()}",
            scope=scope,
        )

    def validate_token(self, access_token: Optional[str]) -> bool:
        """
        Check whether a token is known and unexpired.

        Expired tokens are evicted as a side effect.
        """
        if not access_token:
            return False

        issued = self._tokens.get(access_token)
        if issued is None:
            logger.debug("Token not found")
            return False

        now = self._clock()
        if issued.is_expired(now):
            self._tokens.remove_if(access_token, lambda t: t.is_expired(now))
            logger.info("Token expired", client_id=issued.client_id)
            return False

        return True

    def client_id_for(self, access_token: str) -> Optional[str]:
        """The client that owns a token, if the token is recorded."""
        issued = self._tokens.get(access_token)
        return issued.client_id if issued is not None else None

    def sweep_expired(self) -> int:
        """Evict every expired token. Returns the count removed."""
        now = self._clock()
        removed = sweep(self._tokens, lambda t: t.is_expired(now))
        if removed:
            logger.info("Expired tokens swept", count=removed)
        return removed

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def token_count(self) -> int:
        return len(self._tokens)
