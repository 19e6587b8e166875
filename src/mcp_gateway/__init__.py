"""MCP Gateway - OAuth token authority, sessions and JSON-RPC dispatch.

The gateway authenticates MCP clients, keeps their sessions alive and
routes JSON-RPC messages to registered tools.
"""

from mcp_gateway.audit import AuditLogger
from mcp_gateway.auth import SessionAuthenticator
from mcp_gateway.dispatcher import RpcDispatcher
from mcp_gateway.elicitation import ElicitationCoordinator
from mcp_gateway.oauth import TokenAuthority
from mcp_gateway.registry import ToolRegistry
from mcp_gateway.sessions import SessionManager

__all__ = [
    "AuditLogger",
    "SessionAuthenticator",
    "RpcDispatcher",
    "ElicitationCoordinator",
    "TokenAuthority",
    "ToolRegistry",
    "SessionManager",
]
