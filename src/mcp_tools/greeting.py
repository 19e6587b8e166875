"""Greeting tools.

``sayHello`` is the gateway's smoke-test tool. ``greetUser`` greets by
name and asks the client for the name when it is not supplied, which
exercises the elicitation round trip.
"""

from typing import Any

from mcp_common.logging import get_logger
from mcp_common.models import ToolAnnotation, ToolCallResult, ToolDescriptor
from mcp_common.schema import object_schema
from mcp_tools.base import BaseTool, ToolContext

logger = get_logger(__name__)

NAME_FIELDS = object_schema([
    {"name": "name", "type": "string", "description": "Name to greet"},
])


class SayHelloTool(BaseTool):
    """Returns a fixed hello world message."""

    _descriptor = ToolDescriptor(
        name="sayHello",
        description="Returns a hello world message",
        annotations=frozenset({ToolAnnotation.READ_ONLY, ToolAnnotation.IDEMPOTENT}),
    )

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    def execute(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        return self._text("hello world")


class GreetUserTool(BaseTool):
    """Greets the caller by name, eliciting the name when it is missing."""

    _descriptor = ToolDescriptor(
        name="greetUser",
        description="Greets a user by name; asks for the name if none is given",
        input_schema=object_schema(
            [{"name": "name", "type": "string", "description": "Name to greet"}],
            required=[],
        ),
        output_schema=object_schema([
            {"name": "name", "type": "string", "description": "Name that was greeted"},
            {"name": "source", "type": "string", "description": "arguments or elicitation"},
        ], required=["source"]),
        annotations=frozenset({ToolAnnotation.READ_ONLY}),
    )

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    async def execute(self, arguments: dict[str, Any], context: ToolContext) -> ToolCallResult:
        name = arguments.get("name")
        if name:
            return self._text(f"hello {name}", data={"name": name, "source": "arguments"})

        response = await context.elicit("What name should I greet?", NAME_FIELDS)
        if response is None:
            # fire-and-forget: the answer arrives after this call returns
            return self._text("hello world", data={"source": "elicitation_requested"})

        name = response.values.get("name") if response.accepted else None
        if not name:
            logger.info("Greeting without a name", action=response.action.value)
            return self._text("hello world", data={"source": f"elicitation_{response.action.value}"})

        return self._text(f"hello {name}", data={"name": name, "source": "elicitation"})
