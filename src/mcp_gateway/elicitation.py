"""Elicitation Coordinator for the MCP Gateway.

Tools ask the client for extra input through the coordinator. Each
request gets a fresh id and is queued for delivery on the session's
stream; the client answers with a JSON-RPC response carrying that id.

Whether a tool call waits for the answer is a policy:

- ``fire_and_forget``: the tool gets ``None`` back immediately and the
  answer, when it arrives, is recorded for later retrieval.
- ``await_response``: the tool call blocks until the answer arrives or
  the configured timeout passes.
"""

import asyncio
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from mcp_common.config import ElicitationPolicy, ElicitationSettings
from mcp_common.logging import get_logger
from mcp_common.models import (
    ElicitationAction,
    ElicitationRequest,
    ElicitationResponse,
    empty_object_schema,
    utc_now,
)
from mcp_gateway.errors import ElicitationTimeout
from mcp_gateway.streaming import SessionOutbox

logger = get_logger(__name__)


class ElicitationCoordinator:
    """
    Correlates elicitation requests with their answers.

    All state is confined to the event loop that serves requests.
    """

    def __init__(
        self,
        policy: ElicitationPolicy = ElicitationPolicy.FIRE_AND_FORGET,
        timeout_seconds: float = 60,
        outbox: Optional[SessionOutbox] = None,
        clock: Callable[[], datetime] = utc_now,
        max_recorded: int = 1000,
    ) -> None:
        self.policy = policy
        self.timeout_seconds = timeout_seconds
        self.outbox = outbox if outbox is not None else SessionOutbox()
        self.max_recorded = max_recorded
        self._clock = clock
        self._pending: dict[str, ElicitationRequest] = {}
        self._waiters: dict[str, asyncio.Future] = {}
        self._responses: OrderedDict[str, ElicitationResponse] = OrderedDict()

    @classmethod
    def from_settings(
        cls,
        settings: ElicitationSettings,
        outbox: Optional[SessionOutbox] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "ElicitationCoordinator":
        return cls(
            policy=settings.policy,
            timeout_seconds=settings.timeout_seconds,
            outbox=outbox,
            clock=clock,
        )

    def request_elicitation(
        self,
        prompt: str,
        fields: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> ElicitationRequest:
        """
        Create an elicitation request.

        Args:
            prompt: Question shown to the user
            fields: JSON Schema of the requested values
            session_id: Session whose stream delivers the request

        Returns:
            The request, already queued when a session was given
        """
        request = ElicitationRequest(
            request_id=str(uuid.uuid4()),
            prompt=prompt,
            fields=fields or empty_object_schema(),
            session_id=session_id,
            created_at=self._clock(),
        )
        self._pending[request.request_id] = request

        if session_id:
            self.outbox.publish(session_id, request.to_envelope())

        logger.info(
            "Elicitation requested",
            request_id=request.request_id,
            session_id=session_id
        )
        return request

    def submit_elicitation_response(
        self,
        request_id: str,
        values: Optional[dict[str, Any]] = None,
        action: ElicitationAction = ElicitationAction.ACCEPT,
    ) -> bool:
        """
        Record the client's answer.

        Returns:
            True if the id matched an outstanding request
        """
        request = self._pending.pop(request_id, None)
        if request is None:
            logger.warning("Elicitation response for unknown request", request_id=request_id)
            return False

        response = ElicitationResponse(
            request_id=request_id,
            action=action,
            values=values or {},
            received_at=self._clock(),
        )

        # Values may be sensitive; only field names are logged
        logger.info(
            "Elicitation answered",
            request_id=request_id,
            action=action.value,
            fields=sorted(response.values)
        )

        waiter = self._waiters.pop(request_id, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(response)
        else:
            self._record(response)
        return True

    def handle_client_response(self, message: dict[str, Any]) -> bool:
        """
        Accept a JSON-RPC response sent by the client to an
        ``elicitation/create`` request.
        """
        request_id = message.get("id")
        if not isinstance(request_id, str):
            logger.warning("Client response without a usable id")
            return False

        if message.get("error") is not None:
            return self.submit_elicitation_response(request_id, action=ElicitationAction.CANCEL)

        result = message.get("result")
        if not isinstance(result, dict):
            result = {}

        try:
            action = ElicitationAction(result.get("action", ElicitationAction.ACCEPT.value))
        except ValueError:
            action = ElicitationAction.CANCEL

        values = result.get("content")
        if not isinstance(values, dict):
            values = {}

        return self.submit_elicitation_response(request_id, values, action)

    async def wait_for_response(
        self,
        request_id: str,
        timeout: Optional[float] = None,
    ) -> ElicitationResponse:
        """
        Wait for the answer to an outstanding request.

        Raises:
            KeyError: The id is neither pending nor answered
            ElicitationTimeout: No answer within the timeout
        """
        recorded = self._responses.pop(request_id, None)
        if recorded is not None:
            return recorded

        if request_id not in self._pending:
            raise KeyError(request_id)

        timeout = self.timeout_seconds if timeout is None else timeout
        waiter = self._waiters.get(request_id)
        if waiter is None:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters[request_id] = waiter

        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            self._waiters.pop(request_id, None)
            self._pending.pop(request_id, None)
            logger.warning("Elicitation timed out", request_id=request_id, timeout=timeout)
            raise ElicitationTimeout(
                "Timed out waiting for user input",
                data={"requestId": request_id}
            )

    async def elicit(
        self,
        prompt: str,
        fields: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
        wait: bool = True,
    ) -> Optional[ElicitationResponse]:
        """
        Ask for input, waiting for the answer only under ``await_response``.

        With ``wait`` false, or without a session to deliver to, the request
        is published and None returned whatever the policy.
        """
        request = self.request_elicitation(prompt, fields, session_id)
        if self.policy == ElicitationPolicy.FIRE_AND_FORGET:
            return None
        if not wait or not session_id:
            logger.warning(
                "Elicitation not awaited, client cannot read the session stream yet",
                request_id=request.request_id,
                session_id=session_id
            )
            return None
        return await self.wait_for_response(request.request_id)

    def pop_response(self, request_id: str) -> Optional[ElicitationResponse]:
        """Take a recorded answer, if one arrived."""
        return self._responses.pop(request_id, None)

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    def sweep_expired(self, max_age: Optional[timedelta] = None) -> int:
        """
        Drop unanswered requests and unclaimed answers older than
        ``max_age``. Requests with a live waiter are left alone.
        """
        cutoff = self._clock() - (max_age or timedelta(seconds=self.timeout_seconds))
        stale = [
            request_id for request_id, request in self._pending.items()
            if request.created_at < cutoff and request_id not in self._waiters
        ]
        for request_id in stale:
            del self._pending[request_id]

        unclaimed = [
            request_id for request_id, response in self._responses.items()
            if response.received_at < cutoff
        ]
        for request_id in unclaimed:
            del self._responses[request_id]

        return len(stale) + len(unclaimed)

    def _record(self, response: ElicitationResponse) -> None:
        self._responses[response.request_id] = response
        while len(self._responses) > self.max_recorded:
            self._responses.popitem(last=False)
