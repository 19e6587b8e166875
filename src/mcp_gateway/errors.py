"""Error taxonomy for the MCP Gateway.

Protocol errors carry their JSON-RPC code and are converted to error
envelopes at the dispatcher boundary. OAuth errors carry an RFC 6749 /
RFC 7591 error string and are converted to 4xx responses by the HTTP layer.
Messages must never include secrets or tokens.
"""

from typing import Any, Optional

from mcp_common import jsonrpc


class ConfigurationError(Exception):
    """Startup configuration is unusable. The process must not start."""


class GatewayError(Exception):
    """Base class for errors that map to a JSON-RPC error envelope."""
    code: int = jsonrpc.INTERNAL_ERROR

    def __init__(self, message: str, data: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data


class AuthenticationRequired(GatewayError):
    """No valid session or bearer credential."""
    code = jsonrpc.AUTHENTICATION_REQUIRED


class ParseError(GatewayError):
    """Request body is not valid JSON."""
    code = jsonrpc.PARSE_ERROR


class InvalidRequest(GatewayError):
    """Body is JSON but not a JSON-RPC request."""
    code = jsonrpc.INVALID_REQUEST


class MethodNotFound(GatewayError):
    """Unrecognised method name."""
    code = jsonrpc.METHOD_NOT_FOUND


class InvalidParams(GatewayError):
    """Missing or malformed method parameters."""
    code = jsonrpc.INVALID_PARAMS


class UnknownTool(InvalidParams):
    """``tools/call`` named a tool that is not registered."""


class InternalError(GatewayError):
    """Unexpected failure, reported with a redacted message."""
    code = jsonrpc.INTERNAL_ERROR


class ElicitationTimeout(InternalError):
    """No answer to an elicitation arrived in time."""


class OAuthRequestError(Exception):
    """A registration or token request was rejected."""
    error: str = "invalid_request"

    def __init__(self, description: str, error: Optional[str] = None) -> None:
        super().__init__(description)
        self.description = description
        if error is not None:
            self.error = error

    def to_body(self) -> dict[str, str]:
        return {"error": self.error, "error_description": self.description}


class ClientRegistrationError(OAuthRequestError):
    error = "invalid_client_metadata"


class TokenIssuanceError(OAuthRequestError):
    error = "invalid_request"
