"""Audit logging for the MCP Gateway.

Logs every tool call for compliance and debugging.
Captures: client, session, tool, redacted arguments, timestamp, outcome.
"""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, Optional

import aiofiles

from mcp_common.logging import REDACTED, get_logger
from mcp_common.models import (
    AuditEntry,
    ExecutionContext,
    ToolCallStatus,
    ToolDescriptor,
    utc_now,
)

logger = get_logger(__name__)


class AuditLogger:
    """
    Audit logger for tool calls.

    Entries go to the structured log immediately and are appended to a
    JSON-lines file in batches.
    """

    # Argument names that are redacted in audit logs
    SENSITIVE_PARAMS = {
        "password", "token", "usertoken", "secret", "client_secret",
        "access_token", "api_key", "apikey", "credential", "authorization",
    }

    def __init__(
        self,
        log_path: str = "logs/audit.log",
        enabled: bool = True,
        buffer_size: int = 100
    ) -> None:
        self.log_path = Path(log_path)
        self.enabled = enabled
        self.buffer_size = buffer_size
        self._buffer: list[AuditEntry] = []
        self._lock = asyncio.Lock()

    def _redact_sensitive(self, params: dict[str, Any]) -> dict[str, Any]:
        """Redact sensitive arguments, recursing into nested mappings."""
        redacted = {}
        for key, value in params.items():
            if key.lower() in self.SENSITIVE_PARAMS:
                redacted[key] = REDACTED
            elif isinstance(value, dict):
                redacted[key] = self._redact_sensitive(value)
            else:
                redacted[key] = value
        return redacted

    def create_entry(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        context: ExecutionContext,
        status: ToolCallStatus,
        error: Optional[str] = None,
        execution_time_ms: float = 0,
        descriptor: Optional[ToolDescriptor] = None,
    ) -> AuditEntry:
        """
        Create an audit entry for a tool call.

        Args:
            tool_name: Requested tool name (may be unregistered)
            arguments: Call arguments, redacted before storage
            context: Caller context
            status: Call outcome
            error: Error message, if any
            execution_time_ms: Wall time spent in the tool
            descriptor: Descriptor of the tool, when it exists

        Returns:
            Audit entry
        """
        return AuditEntry(
            id=str(uuid.uuid4()),
            timestamp=utc_now(),
            client_id=context.client_id,
            session_id=context.session_id,
            rpc_id=context.rpc_id,
            tool_name=tool_name,
            read_only=descriptor.read_only if descriptor else False,
            parameters=self._redact_sensitive(arguments),
            status=status,
            error=error,
            execution_time_ms=execution_time_ms,
        )

    async def log(self, entry: AuditEntry) -> None:
        """Record an audit entry."""
        if not self.enabled:
            return

        logger.info(
            "Tool call audited",
            audit_id=entry.id,
            client_id=entry.client_id,
            tool=entry.tool_name,
            status=entry.status.value,
            execution_time_ms=round(entry.execution_time_ms, 3)
        )

        async with self._lock:
            self._buffer.append(entry)

            if len(self._buffer) >= self.buffer_size:
                await self._flush()

    async def _flush(self) -> None:
        """Flush buffered entries to file."""
        if not self._buffer:
            return

        entries_to_write = self._buffer.copy()
        self._buffer.clear()

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.log_path, "a") as f:
                for entry in entries_to_write:
                    await f.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.error("Failed to write audit log", error=str(e))
            # Keep entries for the next flush
            self._buffer[:0] = entries_to_write

    async def flush(self) -> None:
        """Flush the audit buffer."""
        async with self._lock:
            await self._flush()

    async def query(
        self,
        client_id: Optional[str] = None,
        tool_name: Optional[str] = None,
        status: Optional[ToolCallStatus] = None,
        limit: int = 100
    ) -> list[AuditEntry]:
        """
        Query flushed audit entries.

        Args:
            client_id: Filter by client
            tool_name: Filter by tool name
            status: Filter by outcome
            limit: Maximum entries to return

        Returns:
            Matching entries in file order
        """
        results: list[AuditEntry] = []

        if not self.log_path.exists():
            return results

        async with aiofiles.open(self.log_path, "r") as f:
            async for line in f:
                if len(results) >= limit:
                    break

                try:
                    entry = AuditEntry(**json.loads(line))
                except (json.JSONDecodeError, ValueError):
                    continue

                if client_id and entry.client_id != client_id:
                    continue
                if tool_name and entry.tool_name != tool_name:
                    continue
                if status and entry.status != status:
                    continue

                results.append(entry)

        return results
