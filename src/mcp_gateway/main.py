"""MCP Gateway - FastAPI Application.

Serves the OAuth endpoints and the MCP transport. The gateway has no
tool logic of its own: it authenticates callers, keeps sessions and
hands JSON-RPC messages to the dispatcher.
"""

import asyncio
import base64
import binascii
import json
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, unquote_plus

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from mcp_common.config import Settings, get_settings
from mcp_common.jsonrpc import (
    AUTHENTICATION_REQUIRED,
    INTERNAL_ERROR,
    PARSE_ERROR,
    JsonRpcResponse,
    extract_id,
)
from mcp_common.logging import bind_context, clear_context, get_logger, setup_logging
from mcp_common.models import ClientRegistrationRequest, TokenRequest, utc_now
from mcp_gateway.audit import AuditLogger
from mcp_gateway.auth import CHALLENGE, SESSION_HEADER, SessionAuthenticator
from mcp_gateway.dispatcher import RpcDispatcher
from mcp_gateway.elicitation import ElicitationCoordinator
from mcp_gateway.errors import (
    AuthenticationRequired,
    ClientRegistrationError,
    OAuthRequestError,
    TokenIssuanceError,
)
from mcp_gateway.oauth import TokenAuthority
from mcp_gateway.registry import ToolRegistry
from mcp_gateway.sessions import SessionManager
from mcp_gateway.streaming import SessionOutbox, ndjson_stream
from mcp_tools import load_builtin_tools

logger = get_logger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Marks a body that could not be decoded as JSON
_UNPARSEABLE = object()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings

    setup_logging(settings.log_level, json_output=settings.environment == "production")
    logger.info("Starting MCP Gateway", version=settings.server.version)

    sweeper = asyncio.create_task(
        _sweep_periodically(app, settings.session.sweep_interval_seconds)
    )

    logger.info(
        "MCP Gateway started",
        protocol=settings.server.protocol_version,
        tool_count=len(app.state.registry)
    )

    yield

    # Shutdown
    logger.info("Shutting down MCP Gateway")
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await app.state.audit_logger.flush()


async def _sweep_periodically(app: FastAPI, interval: float) -> None:
    """Evict expired sessions, tokens and stale elicitations."""
    while True:
        await asyncio.sleep(interval)
        try:
            sessions = app.state.sessions.sweep_expired()
            tokens = app.state.authority.sweep_expired()
            elicitations = app.state.elicitation.sweep_expired()
        except Exception:
            logger.error("Expiry sweep failed", exc_info=True)
            continue

        logger.debug(
            "Expiry sweep finished",
            sessions=sessions,
            tokens=tokens,
            elicitations=elicitations
        )


def create_app(
    settings: Optional[Settings] = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Configuration, loaded from the environment if omitted
        clock: Source of the current time for every expiry check

    Raises:
        ConfigurationError: The JWT signing secret is unusable
    """
    settings = settings or get_settings()

    authority = TokenAuthority.from_settings(settings.oauth, clock=clock)
    sessions = SessionManager(timeout_minutes=settings.session.timeout_minutes, clock=clock)
    outbox = SessionOutbox()
    elicitation = ElicitationCoordinator.from_settings(settings.elicitation, outbox=outbox, clock=clock)
    audit_logger = AuditLogger(
        log_path=settings.server.audit_log_path,
        enabled=settings.server.enable_audit
    )
    registry = ToolRegistry()
    load_builtin_tools(registry)

    app = FastAPI(
        title="MCP Gateway",
        description="Model Context Protocol gateway with OAuth bearer authentication",
        version=settings.server.version,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    app.state.settings = settings
    app.state.authority = authority
    app.state.sessions = sessions
    app.state.outbox = outbox
    app.state.elicitation = elicitation
    app.state.audit_logger = audit_logger
    app.state.registry = registry
    app.state.authenticator = SessionAuthenticator(authority, sessions)
    app.state.dispatcher = RpcDispatcher(
        registry=registry,
        sessions=sessions,
        elicitation=elicitation,
        audit_logger=audit_logger,
        server_settings=settings.server,
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error(
            "Unhandled error",
            path=request.url.path,
            error_type=type(exc).__name__,
            exc_info=exc
        )
        envelope = JsonRpcResponse.failure(
            None, INTERNAL_ERROR, "Internal error", {"type": type(exc).__name__}
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=envelope.to_wire()
        )

    _add_system_routes(app)
    _add_oauth_routes(app)
    _add_mcp_routes(app)

    return app


def _add_system_routes(app: FastAPI) -> None:

    @app.get("/", tags=["System"])
    async def root(request: Request):
        """Server identity and endpoint map."""
        server = request.app.state.settings.server
        return {
            "name": server.name,
            "version": server.version,
            "protocol": server.protocol_version,
            "endpoints": {
                "mcp": "/mcp",
                "session": "/mcp/session",
                "health": "/health",
                "oauth_metadata": "/.well-known/oauth-authorization-server",
                "oauth_register": "/oauth/register",
                "oauth_token": "/oauth/token",
            },
        }

    @app.get("/health", tags=["System"])
    async def health_check(request: Request):
        """Health check endpoint."""
        state = request.app.state
        return {
            "status": "healthy",
            "version": state.settings.server.version,
            "protocol": state.settings.server.protocol_version,
            "tool_count": len(state.registry),
            "session_count": state.sessions.count(),
        }


def _add_oauth_routes(app: FastAPI) -> None:

    @app.get("/.well-known/oauth-authorization-server", tags=["OAuth"])
    async def oauth_metadata(request: Request):
        """Authorization server metadata (RFC 8414)."""
        return request.app.state.authority.discovery_metadata().model_dump()

    @app.post("/oauth/register", tags=["OAuth"])
    async def register_client(request: Request):
        """Dynamic client registration (RFC 7591)."""
        try:
            body = json.loads(await request.body())
            if not isinstance(body, dict):
                raise ClientRegistrationError("Registration request must be a JSON object")
            registration = request.app.state.authority.register_client(
                ClientRegistrationRequest.model_validate(body)
            )
        except ClientRegistrationError as e:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=e.to_body())
        except ValueError as e:
            # JSON decoding and pydantic validation errors
            error = ClientRegistrationError(_describe_invalid_body(e))
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_body())

        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content=registration.model_dump(),
            headers={"Cache-Control": "no-store"},
        )

    @app.post("/oauth/token", tags=["OAuth"])
    async def issue_token(request: Request):
        """Token endpoint. Accepts JSON or form bodies and HTTP Basic client auth."""
        try:
            fields = await _read_token_fields(request)
            token = request.app.state.authority.issue_token(TokenRequest.model_validate(fields))
        except OAuthRequestError as e:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=e.to_body())
        except ValidationError as e:
            error = TokenIssuanceError(_describe_invalid_body(e))
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_body())
        except Exception:
            logger.error("Token issuance failed", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "server_error", "error_description": "Internal error"},
            )

        return JSONResponse(
            content=token.model_dump(),
            headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
        )


async def _read_token_fields(request: Request) -> dict[str, Any]:
    """
    Decode a token request body.

    Raises:
        TokenIssuanceError: The body is neither a JSON object nor a form
    """
    raw = await request.body()
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(FORM_CONTENT_TYPE):
        fields: dict[str, Any] = dict(parse_qsl(raw.decode("utf-8", errors="replace")))
    else:
        try:
            fields = json.loads(raw) if raw else {}
        except ValueError:
            raise TokenIssuanceError("Request body must be JSON or form encoded")
        if not isinstance(fields, dict):
            raise TokenIssuanceError("Request body must be a JSON object")

    basic = _basic_credentials(request.headers.get("authorization"))
    if basic is not None:
        client_id, client_secret = basic
        fields.setdefault("client_id", client_id)
        fields.setdefault("client_secret", client_secret)

    return fields


def _basic_credentials(authorization: Optional[str]) -> Optional[tuple[str, str]]:
    """Client id and secret from an HTTP Basic header (RFC 6749 section 2.3.1)."""
    if not authorization:
        return None

    scheme, _, encoded = authorization.strip().partition(" ")
    if scheme.lower() != "basic":
        return None

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    client_id, separator, client_secret = decoded.partition(":")
    if not separator:
        return None
    return unquote_plus(client_id), unquote_plus(client_secret)


def _describe_invalid_body(error: ValueError) -> str:
    if isinstance(error, ValidationError):
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in error.errors()})
        return f"Invalid or missing fields: {', '.join(fields)}"
    return "Request body must be valid JSON"


def _add_mcp_routes(app: FastAPI) -> None:

    @app.post("/mcp/session", tags=["MCP"])
    async def create_session(request: Request):
        """Create a session from a bearer token."""
        try:
            session = request.app.state.authenticator.session_from_bearer(
                request.headers.get("authorization")
            )
        except AuthenticationRequired as e:
            return _unauthorized({"error": "unauthorized", "error_description": e.message})

        return JSONResponse(
            content={"sessionId": session.session_id},
            headers={SESSION_HEADER: session.session_id},
        )

    @app.post("/mcp", tags=["MCP"])
    async def handle_message(request: Request):
        """
        MCP message endpoint.

        Returns the response envelope, or 202 with no body for
        notifications and client responses.
        """
        state = request.app.state
        raw = await request.body()
        try:
            payload = json.loads(raw)
        except ValueError:
            payload = _UNPARSEABLE

        try:
            session = state.authenticator.resolve(
                request.headers.get(SESSION_HEADER),
                request.headers.get("authorization"),
            )
        except AuthenticationRequired as e:
            rpc_id = None if payload is _UNPARSEABLE else extract_id(payload)
            envelope = JsonRpcResponse.failure(rpc_id, AUTHENTICATION_REQUIRED, e.message)
            return _unauthorized(envelope.to_wire())

        headers = {SESSION_HEADER: session.session_id}
        new_session = session.session_id != request.headers.get(SESSION_HEADER)
        bind_context(session_id=session.session_id, client_id=session.client_id)
        try:
            if payload is _UNPARSEABLE:
                state.sessions.touch(session.session_id)
                envelope = JsonRpcResponse.failure(None, PARSE_ERROR, "Parse error")
            else:
                if isinstance(payload, dict) and isinstance(payload.get("method"), str):
                    bind_context(rpc_method=payload["method"])
                envelope = await state.dispatcher.dispatch(payload, session, new_session)
        finally:
            clear_context()

        if envelope is None:
            return Response(status_code=status.HTTP_202_ACCEPTED, headers=headers)

        status_code = (
            status.HTTP_500_INTERNAL_SERVER_ERROR
            if envelope.is_error and envelope.error.code == INTERNAL_ERROR
            else status.HTTP_200_OK
        )
        return JSONResponse(status_code=status_code, content=envelope.to_wire(), headers=headers)

    @app.get("/mcp", tags=["MCP"])
    async def open_stream(request: Request):
        """Deliver queued server-to-client messages as NDJSON."""
        state = request.app.state
        session_id = request.headers.get(SESSION_HEADER)
        if not state.sessions.validate_session(session_id):
            return _unauthorized({"error": "unauthorized", "error_description": "Valid session required"})

        state.sessions.touch(session_id)
        return StreamingResponse(
            iter(ndjson_stream(state.outbox, session_id)),
            media_type="application/x-ndjson",
            headers={SESSION_HEADER: session_id},
        )

    @app.delete("/mcp", tags=["MCP"])
    async def terminate_session(request: Request):
        """Terminate the session named by the session header."""
        state = request.app.state
        session_id = request.headers.get(SESSION_HEADER)
        if session_id:
            state.sessions.delete_session(session_id)
            state.outbox.discard(session_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)


def _unauthorized(content: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=content,
        headers={"WWW-Authenticate": CHALLENGE},
    )


def main():
    """Run the MCP Gateway."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "mcp_gateway.main:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
