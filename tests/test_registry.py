"""Tests for the tool registry and built-in tools."""

import pytest


def make_tool(name, input_schema=None, func=None):
    from mcp_tools.base import FunctionTool

    return FunctionTool(
        name=name,
        description=f"{name} tool",
        func=func or (lambda arguments, context: "ok"),
        input_schema=input_schema,
    )


class TestToolRegistry:
    """Tests for the ToolRegistry."""

    def test_register_tool(self):
        """Test registering a tool."""
        from mcp_gateway.registry import ToolRegistry

        registry = ToolRegistry()
        registry.register(make_tool("echo"))

        assert registry.get("echo") is not None
        assert "echo" in registry
        assert len(registry) == 1

    def test_register_duplicate_tool_raises(self):
        """Test that registering a duplicate name raises."""
        from mcp_gateway.registry import ToolRegistry

        registry = ToolRegistry()
        registry.register(make_tool("echo"))

        with pytest.raises(ValueError, match="already registered"):
            registry.register(make_tool("echo"))

    def test_listing_order_is_registration_order(self):
        """Test that tools are listed in a stable order."""
        from mcp_gateway.registry import ToolRegistry

        registry = ToolRegistry()
        registry.register_many([make_tool(n) for n in ("zeta", "alpha", "mid")])

        assert [t.name for t in registry.list_tools()] == ["zeta", "alpha", "mid"]
        assert [d.name for d in registry.descriptors()] == ["zeta", "alpha", "mid"]

    def test_validate_input(self):
        """Test argument validation against the input schema."""
        from mcp_gateway.registry import ToolRegistry

        registry = ToolRegistry()
        registry.register(make_tool("count", input_schema={
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "count": {"type": "integer"}
            },
            "required": ["name"]
        }))

        is_valid, errors = registry.validate_input("count", {"name": "x", "count": 5})
        assert is_valid
        assert errors == []

        is_valid, errors = registry.validate_input("count", {"count": "five"})
        assert not is_valid
        assert len(errors) == 2

    def test_validate_unknown_tool(self):
        """Test validating arguments for an unregistered tool."""
        from mcp_gateway.registry import ToolRegistry

        is_valid, errors = ToolRegistry().validate_input("missing", {})

        assert not is_valid
        assert "not found" in errors[0]


class TestToolDescriptor:
    """Tests for the tool listing wire shape."""

    def test_wire_shape(self):
        """Test camelCase schemas and annotation hints."""
        from mcp_common.models import ToolAnnotation, ToolDescriptor

        descriptor = ToolDescriptor(
            name="wipe",
            description="Wipe it",
            output_schema={"type": "object"},
            annotations=frozenset({ToolAnnotation.DESTRUCTIVE}),
        )

        wire = descriptor.to_wire()

        assert wire["inputSchema"] == {"type": "object", "properties": {}, "required": []}
        assert wire["outputSchema"] == {"type": "object"}
        assert wire["annotations"] == {"destructiveHint": True}
        assert not descriptor.read_only

    def test_no_annotations_omitted(self):
        """Test that empty annotations are left off the wire."""
        from mcp_common.models import ToolDescriptor

        wire = ToolDescriptor(name="plain", description="Plain").to_wire()

        assert "annotations" not in wire
        assert "outputSchema" not in wire


class TestBuiltinTools:
    """Tests for the built-in tools."""

    def test_builtin_tools_registered(self):
        """Test loading the built-in tools."""
        from mcp_gateway.registry import ToolRegistry
        from mcp_tools import load_builtin_tools

        registry = ToolRegistry()
        load_builtin_tools(registry)

        assert [t.name for t in registry.list_tools()] == ["sayHello", "greetUser"]
        assert registry.get("sayHello").descriptor.read_only

    def test_say_hello(self):
        """Test the hello world tool."""
        from mcp_common.models import ExecutionContext
        from mcp_tools.base import ToolContext
        from mcp_tools.greeting import SayHelloTool

        tool = SayHelloTool()
        result = tool.execute({}, ToolContext(ExecutionContext(client_id="c")))

        assert not tool.is_async
        assert result.content[0].text == "hello world"
        assert result.to_wire() == {
            "content": [{"type": "text", "text": "hello world"}],
            "isError": False,
        }

    @pytest.mark.asyncio
    async def test_greet_user_with_name(self):
        """Test greeting with a name argument skips elicitation."""
        from mcp_common.models import ExecutionContext
        from mcp_tools.base import ToolContext
        from mcp_tools.greeting import GreetUserTool

        result = await GreetUserTool().execute(
            {"name": "Ada"}, ToolContext(ExecutionContext(client_id="c"))
        )

        assert result.content[0].text == "hello Ada"
        assert result.data == {"name": "Ada", "source": "arguments"}

    @pytest.mark.asyncio
    async def test_greet_user_without_elicitation(self):
        """Test greeting falls back when elicitation is unavailable."""
        from mcp_common.models import ExecutionContext
        from mcp_tools.base import ToolContext
        from mcp_tools.greeting import GreetUserTool

        result = await GreetUserTool().execute({}, ToolContext(ExecutionContext(client_id="c")))

        assert result.content[0].text == "hello world"
        assert result.data == {"source": "elicitation_requested"}
