"""Core data models for the MCP Gateway.

This module defines the shared data structures: OAuth registrations and
tokens, sessions, tool descriptors and results, elicitation exchanges and
audit entries.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mcp_common.jsonrpc import JsonRpcRequest


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# OAuth

DEFAULT_GRANT_TYPES = ["authorization_code", "refresh_token"]
DEFAULT_RESPONSE_TYPES = ["code"]
DEFAULT_SCOPE = "mcp"
DEFAULT_AUTH_METHOD = "client_secret_post"


class ClientRegistrationRequest(BaseModel):
    """RFC 7591 client registration request. Only the name is required."""
    client_name: str
    redirect_uris: Optional[list[str]] = None
    grant_types: Optional[list[str]] = None
    response_types: Optional[list[str]] = None
    scope: Optional[str] = None
    token_endpoint_auth_method: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class ClientRegistration(BaseModel):
    """
    A registered OAuth client.

    Created once by the token authority and never modified afterwards.
    The secret is a credential: it is returned to the registering client
    and otherwise kept out of logs and reprs.
    """
    client_id: str
    client_secret: str = Field(..., repr=False)
    client_name: str
    redirect_uris: list[str] = Field(default_factory=list)
    grant_types: list[str] = Field(default_factory=lambda: list(DEFAULT_GRANT_TYPES))
    response_types: list[str] = Field(default_factory=lambda: list(DEFAULT_RESPONSE_TYPES))
    scope: str = DEFAULT_SCOPE
    token_endpoint_auth_method: str = DEFAULT_AUTH_METHOD
    client_id_issued_at: int = 0
    client_secret_expires_at: int = 0  # 0 means the secret never expires

    model_config = ConfigDict(frozen=True)


class TokenRequest(BaseModel):
    """
    OAuth token request.

    Authorization-code, refresh and PKCE fields are accepted so standard
    clients can talk to the endpoint, but only the client credentials are
    checked.
    """
    grant_type: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = Field(default=None, repr=False)
    scope: Optional[str] = None
    code: Optional[str] = None
    redirect_uri: Optional[str] = None
    refresh_token: Optional[str] = Field(default=None, repr=False)
    code_verifier: Optional[str] = Field(default=None, repr=False)

    model_config = ConfigDict(extra="ignore")


class TokenResponse(BaseModel):
    """OAuth token response."""
    access_token: str = Field(..., repr=False)
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str = Field(..., repr=False)
    scope: str


class IssuedToken(BaseModel):
    """An access token recorded by the authority."""
    access_token: str = Field(..., repr=False)
    client_id: str
    scope: str = DEFAULT_SCOPE
    issued_at: datetime
    expires_at: datetime

    model_config = ConfigDict(frozen=True)

    def is_expired(self, now: datetime) -> bool:
        """Tokens are valid strictly before their expiry instant."""
        return now >= self.expires_at


class OAuthMetadata(BaseModel):
    """OAuth 2.1 Authorization Server Metadata (RFC 8414)."""
    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    jwks_uri: str
    response_types_supported: list[str]
    grant_types_supported: list[str]
    token_endpoint_auth_methods_supported: list[str]
    scopes_supported: list[str]
    code_challenge_methods_supported: list[str]


# Sessions

class Session(BaseModel):
    """
    An MCP session.

    Bound to the client and the token that created it. ``expires_at`` slides
    forward on every authenticated request.
    """
    session_id: str
    client_id: str
    access_token: str = Field(..., repr=False, exclude=True)
    creation_time: datetime
    last_access_time: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def _expiry_not_before_access(self) -> "Session":
        if self.expires_at < self.last_access_time:
            raise ValueError("expires_at must not precede last_access_time")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


# Tools

class ToolAnnotation(str, Enum):
    """Safety hints a tool advertises to clients."""
    READ_ONLY = "readOnly"
    DESTRUCTIVE = "destructive"
    IDEMPOTENT = "idempotent"


def empty_object_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


class ToolDescriptor(BaseModel):
    """
    Static description of a tool as listed by ``tools/list``.

    Descriptors are defined at startup and never change.
    """
    name: str = Field(..., min_length=1)
    description: str
    input_schema: dict[str, Any] = Field(default_factory=empty_object_schema)
    output_schema: Optional[dict[str, Any]] = None
    annotations: frozenset[ToolAnnotation] = frozenset()

    model_config = ConfigDict(frozen=True)

    @property
    def read_only(self) -> bool:
        return ToolAnnotation.READ_ONLY in self.annotations

    def to_wire(self) -> dict[str, Any]:
        """Serialize in the MCP tool listing shape."""
        tool: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.output_schema is not None:
            tool["outputSchema"] = self.output_schema
        if self.annotations:
            tool["annotations"] = {
                f"{annotation.value}Hint": True
                for annotation in ToolAnnotation
                if annotation in self.annotations
            }
        return tool


class ContentItem(BaseModel):
    """Human-readable content block."""
    type: str = "text"
    text: str


class ToolCallResult(BaseModel):
    """
    Uniform result of ``tools/call``.

    There is always at least one content item so a generic client can
    render something; ``data`` carries the tool's structured payload.
    """
    content: list[ContentItem]
    data: Optional[Any] = None
    is_error: bool = Field(default=False, alias="isError")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("content")
    @classmethod
    def _content_not_empty(cls, value: list[ContentItem]) -> list[ContentItem]:
        if not value:
            raise ValueError("content must hold at least one item")
        return value

    @classmethod
    def text(cls, text: str, data: Optional[Any] = None) -> "ToolCallResult":
        """Result with a single text item."""
        return cls(content=[ContentItem(text=text)], data=data)

    def to_wire(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "content": [item.model_dump() for item in self.content],
            "isError": self.is_error,
        }
        if self.data is not None:
            result["data"] = self.data
        return result


class ExecutionContext(BaseModel):
    """Who is calling a tool and on behalf of which request."""
    rpc_id: Any = None
    client_id: str
    session_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ToolCallStatus(str, Enum):
    """Outcome of a tool call, as audited."""
    SUCCESS = "success"
    ERROR = "error"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"


# Elicitation

ELICITATION_METHOD = "elicitation/create"


class ElicitationAction(str, Enum):
    """How the user answered an elicitation."""
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"


class ElicitationRequest(BaseModel):
    """A server-initiated request for user input."""
    request_id: str
    prompt: str
    fields: dict[str, Any] = Field(default_factory=empty_object_schema)
    session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    def to_envelope(self) -> dict[str, Any]:
        """The JSON-RPC request delivered to the client."""
        return JsonRpcRequest(
            id=self.request_id,
            method=ELICITATION_METHOD,
            params={"message": self.prompt, "requestedSchema": self.fields},
        ).to_wire()


class ElicitationResponse(BaseModel):
    """The client's answer to an elicitation request."""
    request_id: str
    action: ElicitationAction = ElicitationAction.ACCEPT
    values: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=utc_now)

    @property
    def accepted(self) -> bool:
        return self.action == ElicitationAction.ACCEPT


# Audit

class AuditEntry(BaseModel):
    """
    Audit log entry for tool calls.

    Captures client, session, tool, redacted arguments, timestamp and
    outcome.
    """
    id: str
    timestamp: datetime = Field(default_factory=utc_now)

    # Caller
    client_id: str
    session_id: Optional[str] = None
    rpc_id: Optional[str | int | float] = None

    # Tool
    tool_name: str
    read_only: bool = False
    parameters: dict[str, Any] = Field(default_factory=dict)

    # Outcome
    status: ToolCallStatus
    error: Optional[str] = None
    execution_time_ms: float = 0
