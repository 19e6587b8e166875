"""JSON-RPC dispatcher for the MCP Gateway.

Routes MCP methods to handlers and invokes tools.
Handles envelope validation, notifications, error mapping and auditing.
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from mcp_common.config import ServerSettings
from mcp_common.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    JsonRpcRequest,
    JsonRpcResponse,
    extract_id,
    is_client_response,
    is_notification,
)
from mcp_common.logging import get_logger
from mcp_common.models import (
    ContentItem,
    ExecutionContext,
    Session,
    ToolCallResult,
    ToolCallStatus,
)
from mcp_gateway.audit import AuditLogger
from mcp_gateway.elicitation import ElicitationCoordinator
from mcp_gateway.errors import GatewayError, InvalidParams, MethodNotFound, UnknownTool
from mcp_gateway.registry import ToolRegistry
from mcp_gateway.sessions import SessionManager
from mcp_tools.base import BaseTool, ToolContext

logger = get_logger(__name__)

# Handler signature: (request, session, new_session) -> result payload
MethodHandler = Callable[[JsonRpcRequest, Session, bool], Awaitable[Any]]


class RpcDispatcher:
    """
    Dispatches MCP requests for an authenticated session.

    Responsibilities:
    - Validate envelopes
    - Route methods by exact name
    - Validate and invoke tools
    - Map failures to error envelopes
    - Audit every tool call
    """

    def __init__(
        self,
        registry: ToolRegistry,
        sessions: SessionManager,
        elicitation: Optional[ElicitationCoordinator] = None,
        audit_logger: Optional[AuditLogger] = None,
        server_settings: Optional[ServerSettings] = None,
    ) -> None:
        self.registry = registry
        self.sessions = sessions
        self.elicitation = elicitation if elicitation is not None else ElicitationCoordinator()
        self.audit_logger = audit_logger if audit_logger is not None else AuditLogger(enabled=False)
        self.server = server_settings if server_settings is not None else ServerSettings()
        self._handlers: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "ping": self._ping,
        }

    async def dispatch(
        self,
        payload: Any,
        session: Session,
        new_session: bool = False
    ) -> Optional[JsonRpcResponse]:
        """
        Handle one decoded message.

        Args:
            payload: Parsed JSON body
            session: Authenticated session
            new_session: The session was created for this message, so the
                client cannot read its stream until the response arrives

        Returns:
            The response envelope, or None for notifications and for
            client responses to server-initiated requests
        """
        self.sessions.touch(session.session_id)

        if not isinstance(payload, dict):
            return JsonRpcResponse.failure(None, INVALID_REQUEST, "Invalid Request")

        if is_client_response(payload):
            self.elicitation.handle_client_response(payload)
            return None

        if is_notification(payload):
            logger.debug("Notification received", method=payload["method"])
            return None

        try:
            request = JsonRpcRequest.model_validate(payload)
        except ValidationError as e:
            logger.info("Invalid JSON-RPC envelope", errors=e.error_count())
            return JsonRpcResponse.failure(extract_id(payload), INVALID_REQUEST, "Invalid Request")

        try:
            handler = self._handlers.get(request.method)
            if handler is None:
                raise MethodNotFound(f"Method not found: {request.method}")
            result = await handler(request, session, new_session)
        except GatewayError as e:
            return JsonRpcResponse.failure(request.id, e.code, e.message, e.data)
        except Exception as e:
            logger.error(
                "Request handling failed",
                method=request.method,
                error_type=type(e).__name__,
                exc_info=True
            )
            return JsonRpcResponse.failure(
                request.id, INTERNAL_ERROR, "Internal error", {"type": type(e).__name__}
            )

        return JsonRpcResponse.success(request.id, result)

    async def _initialize(
        self,
        request: JsonRpcRequest,
        session: Session,
        new_session: bool
    ) -> dict[str, Any]:
        client_info = (request.params or {}).get("clientInfo")
        logger.info(
            "Client initialized",
            client_id=session.client_id,
            client_info=client_info if isinstance(client_info, dict) else None
        )
        return {
            "protocolVersion": self.server.protocol_version,
            "serverInfo": {"name": self.server.name, "version": self.server.version},
            "capabilities": {
                "tools": {"listChanged": False},
                "elicitation": {},
            },
        }

    async def _list_tools(
        self,
        request: JsonRpcRequest,
        session: Session,
        new_session: bool
    ) -> dict[str, Any]:
        return {"tools": [descriptor.to_wire() for descriptor in self.registry.descriptors()]}

    async def _ping(
        self,
        request: JsonRpcRequest,
        session: Session,
        new_session: bool
    ) -> dict[str, Any]:
        return {"status": "pong"}

    async def _call_tool(
        self,
        request: JsonRpcRequest,
        session: Session,
        new_session: bool
    ) -> dict[str, Any]:
        """
        Execute ``tools/call``.

        Looks the tool up, validates arguments, runs it and audits the
        outcome. Tool exceptions, and results that cannot be written as
        JSON, propagate to ``dispatch`` after auditing. A tool running in
        a session created by this very call may not wait for elicitation
        answers: the client cannot see the session stream yet.
        """
        params = request.params
        if params is None:
            raise InvalidParams("Missing params")

        tool_name = params.get("name")
        if not isinstance(tool_name, str) or not tool_name:
            raise InvalidParams("Missing or invalid tool name")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParams("Tool arguments must be an object")

        context = ExecutionContext(
            rpc_id=request.id,
            client_id=session.client_id,
            session_id=session.session_id,
        )

        tool = self.registry.get(tool_name)
        if tool is None:
            await self._audit(tool_name, arguments, context, ToolCallStatus.NOT_FOUND,
                              error="Tool not found")
            raise UnknownTool(f"Unknown tool: {tool_name}")

        is_valid, errors = self.registry.validate_input(tool_name, arguments)
        if not is_valid:
            await self._audit(tool_name, arguments, context, ToolCallStatus.VALIDATION_ERROR,
                              error="; ".join(errors), tool=tool)
            raise InvalidParams("Invalid tool arguments", data={"errors": errors})

        logger.debug("Executing tool", tool=tool_name, rpc_id=request.id)

        start_time = time.perf_counter()
        try:
            tool_context = ToolContext(context, self.elicitation, await_elicitation=not new_session)
            output = await self._execute(tool, arguments, tool_context)
            result = normalize_result(output)
            wire = ensure_json_safe(result.to_wire())
        except Exception as e:
            elapsed = (time.perf_counter() - start_time) * 1000
            await self._audit(tool_name, arguments, context, ToolCallStatus.ERROR,
                              error=type(e).__name__, elapsed=elapsed, tool=tool)
            raise

        elapsed = (time.perf_counter() - start_time) * 1000
        await self._audit(
            tool_name, arguments, context,
            ToolCallStatus.ERROR if result.is_error else ToolCallStatus.SUCCESS,
            elapsed=elapsed, tool=tool
        )
        return wire

    async def _execute(
        self,
        tool: BaseTool,
        arguments: dict[str, Any],
        context: ToolContext
    ) -> Any:
        """Run a tool, off the event loop when it is synchronous."""
        if tool.is_async:
            return await tool.execute(arguments, context)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, tool.execute, arguments, context)

    async def _audit(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        context: ExecutionContext,
        status: ToolCallStatus,
        error: Optional[str] = None,
        elapsed: float = 0,
        tool: Optional[BaseTool] = None,
    ) -> None:
        entry = self.audit_logger.create_entry(
            tool_name,
            arguments,
            context,
            status,
            error=error,
            execution_time_ms=elapsed,
            descriptor=tool.descriptor if tool else None,
        )
        await self.audit_logger.log(entry)


def normalize_result(output: Any) -> ToolCallResult:
    """
    Coerce tool output into a ``ToolCallResult``.

    Mappings that already look like a call result are validated as one;
    other values become a JSON text item with the value as ``data``.
    """
    if isinstance(output, ToolCallResult):
        return output

    if isinstance(output, dict) and "content" in output:
        return ToolCallResult.model_validate(output)

    if isinstance(output, str):
        return ToolCallResult.text(output)

    return ToolCallResult(
        content=[ContentItem(text=json.dumps(output, default=str))],
        data=output,
    )


def ensure_json_safe(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Check that a result can be written to the wire.

    Raises:
        TypeError: A value has no JSON representation
        ValueError: A float is NaN or infinite
    """
    json.dumps(payload, allow_nan=False)
    return payload
