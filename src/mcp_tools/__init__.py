"""Gateway tools.

Each tool carries its own descriptor and invocation. Tools are isolated:
no shared state, no calls into other tools.
"""

from typing import TYPE_CHECKING

from mcp_tools.base import BaseTool, FunctionTool, ToolContext

if TYPE_CHECKING:
    from mcp_gateway.registry import ToolRegistry


def builtin_tools() -> list[BaseTool]:
    """Tools shipped with the gateway, in listing order."""
    from mcp_tools.greeting import GreetUserTool, SayHelloTool

    return [SayHelloTool(), GreetUserTool()]


def load_builtin_tools(registry: "ToolRegistry") -> None:
    """
    Register the built-in tools.

    Called at startup, before the first request is served.
    """
    registry.register_many(builtin_tools())


__all__ = [
    "BaseTool",
    "FunctionTool",
    "ToolContext",
    "builtin_tools",
    "load_builtin_tools",
]
