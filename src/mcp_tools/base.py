"""Base classes for gateway tools.

A tool is a descriptor plus an ``execute`` callable. Tools:
- Take a name-keyed argument mapping and a ``ToolContext``
- Return a ``ToolCallResult``, a mapping, a string or any JSON-able value
- May be sync or async; sync tools run off the event loop
- Raise on failure; the dispatcher turns exceptions into JSON-RPC errors
"""

import inspect
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Optional

from mcp_common.logging import get_logger
from mcp_common.models import (
    ElicitationResponse,
    ExecutionContext,
    ToolAnnotation,
    ToolCallResult,
    ToolDescriptor,
)

if TYPE_CHECKING:
    from mcp_gateway.elicitation import ElicitationCoordinator

logger = get_logger(__name__)


class ToolContext:
    """What a running tool may know and do beyond its arguments."""

    def __init__(
        self,
        execution: ExecutionContext,
        elicitation: Optional["ElicitationCoordinator"] = None,
        await_elicitation: bool = True,
    ) -> None:
        self.execution = execution
        self._elicitation = elicitation
        self._await_elicitation = await_elicitation

    @property
    def client_id(self) -> str:
        return self.execution.client_id

    @property
    def session_id(self) -> Optional[str]:
        return self.execution.session_id

    async def elicit(
        self,
        prompt: str,
        fields: Optional[dict[str, Any]] = None
    ) -> Optional[ElicitationResponse]:
        """
        Ask the client for input.

        Returns the answer under the ``await_response`` policy, ``None``
        under ``fire_and_forget``, when elicitation is unavailable, or when
        the client cannot receive the request before this call returns.
        """
        if self._elicitation is None:
            return None
        return await self._elicitation.elicit(
            prompt, fields, self.session_id, wait=self._await_elicitation
        )


class BaseTool(ABC):
    """Base class for tools served by the gateway."""

    @property
    @abstractmethod
    def descriptor(self) -> ToolDescriptor:
        """Static description of the tool."""

    @abstractmethod
    def execute(self, arguments: dict[str, Any], context: ToolContext) -> Any:
        """
        Run the tool.

        Args:
            arguments: Arguments from ``tools/call``, schema-validated
            context: Caller identity and elicitation access

        Returns:
            Tool output (see module docstring)
        """

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.execute)

    def _text(self, text: str, data: Any = None) -> ToolCallResult:
        return ToolCallResult.text(text, data=data)


class FunctionTool(BaseTool):
    """
    Tool backed by a plain function.

    The function takes ``(arguments, context)`` and may be a coroutine
    function.
    """

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[[dict[str, Any], ToolContext], Any],
        input_schema: Optional[dict[str, Any]] = None,
        output_schema: Optional[dict[str, Any]] = None,
        annotations: frozenset[ToolAnnotation] = frozenset(),
    ) -> None:
        fields: dict[str, Any] = {
            "name": name,
            "description": description,
            "output_schema": output_schema,
            "annotations": annotations,
        }
        if input_schema is not None:
            fields["input_schema"] = input_schema
        self._descriptor = ToolDescriptor(**fields)
        self._func = func

    @property
    def descriptor(self) -> ToolDescriptor:
        return self._descriptor

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self._func)

    def execute(self, arguments: dict[str, Any], context: ToolContext) -> Any:
        return self._func(arguments, context)
