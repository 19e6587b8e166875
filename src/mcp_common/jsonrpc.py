"""JSON-RPC 2.0 envelopes spoken over the MCP transport.

Responses carry exactly one of ``result`` and ``error``; the model refuses
to be constructed otherwise. The request ``id`` is echoed verbatim.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

JSONRPC_VERSION = "2.0"

# Methods under this prefix are notifications and never get a reply
NOTIFICATION_PREFIX = "notifications/"

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Server-defined range
AUTHENTICATION_REQUIRED = -32001


def _check_id(value: Any) -> Any:
    # bool is an int subclass but not a valid id
    if value is None or (isinstance(value, (str, int, float)) and not isinstance(value, bool)):
        return value
    raise ValueError("id must be a string, a number or null")


class JsonRpcRequest(BaseModel):
    """A request or notification. Unknown top-level fields are ignored."""
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: Any = None
    method: str = Field(..., min_length=1)
    params: Optional[dict[str, Any]] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: Any) -> Any:
        return _check_id(value)

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the wire."""
        message: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.id is not None:
            message["id"] = self.id
        message["method"] = self.method
        if self.params is not None:
            message["params"] = self.params
        return message


class JsonRpcError(BaseModel):
    """Error object of a failed response."""
    code: int
    message: str
    data: Optional[Any] = None

    def to_wire(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class JsonRpcResponse(BaseModel):
    """A response envelope: ``result`` XOR ``error``."""
    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: Any = None
    result: Optional[Any] = None
    error: Optional[JsonRpcError] = None

    @field_validator("id")
    @classmethod
    def _validate_id(cls, value: Any) -> Any:
        return _check_id(value)

    @model_validator(mode="after")
    def _result_xor_error(self) -> "JsonRpcResponse":
        if (self.result is None) == (self.error is None):
            raise ValueError("exactly one of result and error must be set")
        return self

    @classmethod
    def success(cls, id: Any, result: Any) -> "JsonRpcResponse":
        """Build a success envelope."""
        return cls(id=id, result=result)

    @classmethod
    def failure(
        cls,
        id: Any,
        code: int,
        message: str,
        data: Optional[Any] = None
    ) -> "JsonRpcResponse":
        """Build an error envelope."""
        return cls(id=id, error=JsonRpcError(code=code, message=message, data=data))

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the wire. ``id`` is always present, null if unknown."""
        message: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            message["error"] = self.error.to_wire()
        else:
            message["result"] = self.result
        return message


def is_notification(payload: Any) -> bool:
    """
    Whether a parsed payload is a notification.

    Notifications are recognised by method name, not by a missing id, and
    before the rest of the envelope is validated.
    """
    return (
        isinstance(payload, dict)
        and isinstance(payload.get("method"), str)
        and payload["method"].startswith(NOTIFICATION_PREFIX)
    )


def is_client_response(payload: Any) -> bool:
    """Whether a parsed payload is a reply to a server-initiated request."""
    return (
        isinstance(payload, dict)
        and "method" not in payload
        and "id" in payload
        and ("result" in payload or "error" in payload)
    )


def extract_id(payload: Any) -> Any:
    """Best-effort id lookup for error replies to malformed requests."""
    if not isinstance(payload, dict):
        return None
    try:
        return _check_id(payload.get("id"))
    except ValueError:
        return None
