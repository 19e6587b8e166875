"""Tool Registry for the MCP Gateway.

Manages registration, discovery and lookup of tools. Tools are
registered at startup and listed in registration order.
"""

from typing import Any, Iterable, Optional

from mcp_common.logging import get_logger
from mcp_common.models import ToolDescriptor
from mcp_common.schema import validate_schema
from mcp_tools.base import BaseTool

logger = get_logger(__name__)


class ToolRegistry:
    """
    Central registry for gateway tools.

    Responsibilities:
    - Register tools by unique name
    - List descriptors in a stable order
    - Look tools up by name
    - Validate arguments against input schemas
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """
        Register a tool.

        Args:
            tool: Tool to register

        Raises:
            ValueError: If the tool name is already registered
        """
        name = tool.name

        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered")

        self._tools[name] = tool

        logger.info(
            "Tool registered",
            tool=name,
            annotations=sorted(a.value for a in tool.descriptor.annotations)
        )

    def register_many(self, tools: Iterable[BaseTool]) -> None:
        """Register multiple tools at once."""
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> Optional[BaseTool]:
        """
        Get a tool by name.

        Returns:
            The tool if registered, None otherwise
        """
        return self._tools.get(name)

    def list_tools(self) -> list[BaseTool]:
        """All tools in registration order."""
        return list(self._tools.values())

    def descriptors(self) -> list[ToolDescriptor]:
        return [tool.descriptor for tool in self._tools.values()]

    def validate_input(
        self,
        name: str,
        arguments: dict[str, Any]
    ) -> tuple[bool, list[str]]:
        """
        Validate arguments against a tool's input schema.

        Args:
            name: Tool name
            arguments: Arguments to validate

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        tool = self.get(name)
        if not tool:
            return False, [f"Tool '{name}' not found"]

        return validate_schema(arguments, tool.descriptor.input_schema)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
