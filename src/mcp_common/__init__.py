"""Shared models, configuration and logging for the MCP Gateway."""

from mcp_common.models import (
    ClientRegistration,
    ExecutionContext,
    IssuedToken,
    Session,
    ToolCallResult,
    ToolDescriptor,
)
from mcp_common.jsonrpc import JsonRpcRequest, JsonRpcResponse
from mcp_common.config import Settings, get_settings
from mcp_common.logging import get_logger, setup_logging

__all__ = [
    "ClientRegistration",
    "ExecutionContext",
    "IssuedToken",
    "Session",
    "ToolCallResult",
    "ToolDescriptor",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
