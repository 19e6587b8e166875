"""Tests for the elicitation coordinator."""

import asyncio
from datetime import timedelta

import pytest


class TestElicitationCoordinator:
    """Tests for request and response correlation."""

    def test_request_published_to_session_outbox(self):
        """Test that a request is queued as an elicitation/create envelope."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()

        request = coordinator.request_elicitation(
            "Your name?",
            {"type": "object", "properties": {"name": {"type": "string"}}},
            session_id="s1",
        )

        messages = coordinator.outbox.drain("s1")
        assert messages == [{
            "jsonrpc": "2.0",
            "id": request.request_id,
            "method": "elicitation/create",
            "params": {
                "message": "Your name?",
                "requestedSchema": {"type": "object", "properties": {"name": {"type": "string"}}},
            },
        }]
        assert coordinator.is_pending(request.request_id)

    def test_request_without_session_not_published(self):
        """Test that requests without a session are only tracked."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()
        request = coordinator.request_elicitation("Your name?")

        assert request.fields == {"type": "object", "properties": {}, "required": []}
        assert coordinator.is_pending(request.request_id)

    def test_request_ids_unique(self):
        """Test that each request gets a fresh id."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()
        ids = {coordinator.request_elicitation("q").request_id for _ in range(50)}

        assert len(ids) == 50

    def test_submit_response(self):
        """Test recording an answer for a pending request."""
        from mcp_common.models import ElicitationAction
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()
        request = coordinator.request_elicitation("Your name?")

        assert coordinator.submit_elicitation_response(request.request_id, {"name": "Ada"})
        assert not coordinator.is_pending(request.request_id)

        response = coordinator.pop_response(request.request_id)
        assert response.action == ElicitationAction.ACCEPT
        assert response.values == {"name": "Ada"}
        assert coordinator.pop_response(request.request_id) is None

    def test_submit_unknown_request(self):
        """Test that answers to unknown ids are refused."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        assert not ElicitationCoordinator().submit_elicitation_response("nope", {"a": 1})

    def test_handle_client_response(self):
        """Test decoding a JSON-RPC reply from the client."""
        from mcp_common.models import ElicitationAction
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()
        request = coordinator.request_elicitation("Your name?")

        handled = coordinator.handle_client_response({
            "jsonrpc": "2.0",
            "id": request.request_id,
            "result": {"action": "decline"},
        })

        assert handled
        response = coordinator.pop_response(request.request_id)
        assert response.action == ElicitationAction.DECLINE
        assert response.values == {}

    def test_handle_client_error_cancels(self):
        """Test that an error reply counts as a cancellation."""
        from mcp_common.models import ElicitationAction
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()
        request = coordinator.request_elicitation("Your name?")

        coordinator.handle_client_response({
            "jsonrpc": "2.0",
            "id": request.request_id,
            "error": {"code": -1, "message": "User closed dialog"},
        })

        assert coordinator.pop_response(request.request_id).action == ElicitationAction.CANCEL

    def test_sweep_expired(self, clock):
        """Test that stale requests and unclaimed answers are dropped."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator(timeout_seconds=60, clock=clock)
        stale = coordinator.request_elicitation("old")
        answered = coordinator.request_elicitation("answered")
        coordinator.submit_elicitation_response(answered.request_id, {"x": 1})

        clock.advance(seconds=61)
        fresh = coordinator.request_elicitation("new")

        assert coordinator.sweep_expired() == 2
        assert not coordinator.is_pending(stale.request_id)
        assert coordinator.pop_response(answered.request_id) is None
        assert coordinator.is_pending(fresh.request_id)

    def test_sweep_with_max_age(self, clock):
        """Test sweeping with an explicit age."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator(clock=clock)
        request = coordinator.request_elicitation("q")
        clock.advance(seconds=10)

        assert coordinator.sweep_expired(max_age=timedelta(seconds=5)) == 1
        assert not coordinator.is_pending(request.request_id)


class TestElicitationWaiting:
    """Tests for the await_response policy."""

    @pytest.mark.asyncio
    async def test_wait_for_response(self):
        """Test that a waiter is woken by the answer."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()
        request = coordinator.request_elicitation("Your name?")

        waiter = asyncio.create_task(coordinator.wait_for_response(request.request_id, timeout=5))
        await asyncio.sleep(0)
        coordinator.submit_elicitation_response(request.request_id, {"name": "Ada"})

        response = await waiter
        assert response.values == {"name": "Ada"}
        # Delivered to the waiter, not recorded
        assert coordinator.pop_response(request.request_id) is None

    @pytest.mark.asyncio
    async def test_wait_returns_recorded_answer(self):
        """Test waiting after the answer already arrived."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()
        request = coordinator.request_elicitation("Your name?")
        coordinator.submit_elicitation_response(request.request_id, {"name": "Ada"})

        response = await coordinator.wait_for_response(request.request_id)

        assert response.values == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        """Test that an unanswered request times out."""
        from mcp_gateway.elicitation import ElicitationCoordinator
        from mcp_gateway.errors import ElicitationTimeout

        coordinator = ElicitationCoordinator()
        request = coordinator.request_elicitation("Your name?")

        with pytest.raises(ElicitationTimeout) as exc_info:
            await coordinator.wait_for_response(request.request_id, timeout=0.01)

        assert exc_info.value.code == -32603
        assert not coordinator.is_pending(request.request_id)

    @pytest.mark.asyncio
    async def test_wait_unknown_request(self):
        """Test waiting for an id that was never issued."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        with pytest.raises(KeyError):
            await ElicitationCoordinator().wait_for_response("nope")

    @pytest.mark.asyncio
    async def test_elicit_fire_and_forget(self):
        """Test that the default policy does not wait."""
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator()

        assert await coordinator.elicit("Your name?", session_id="s1") is None
        assert coordinator.outbox.pending("s1") == 1

    @pytest.mark.asyncio
    async def test_elicit_await_response(self):
        """Test that await_response blocks until the client answers."""
        from mcp_common.config import ElicitationPolicy
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator(policy=ElicitationPolicy.AWAIT_RESPONSE, timeout_seconds=5)

        task = asyncio.create_task(coordinator.elicit("Your name?", session_id="s1"))
        await asyncio.sleep(0)
        envelope = coordinator.outbox.drain("s1")[0]
        coordinator.handle_client_response({
            "jsonrpc": "2.0",
            "id": envelope["id"],
            "result": {"action": "accept", "content": {"name": "Ada"}},
        })

        response = await task
        assert response.accepted
        assert response.values == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_elicit_without_wait(self):
        """Test that await_response publishes but returns when told not to wait."""
        from mcp_common.config import ElicitationPolicy
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator(policy=ElicitationPolicy.AWAIT_RESPONSE, timeout_seconds=5)

        assert await coordinator.elicit("Your name?", session_id="s1", wait=False) is None
        assert coordinator.outbox.pending("s1") == 1

    @pytest.mark.asyncio
    async def test_elicit_without_session(self):
        """Test that await_response does not wait when nobody can answer."""
        from mcp_common.config import ElicitationPolicy
        from mcp_gateway.elicitation import ElicitationCoordinator

        coordinator = ElicitationCoordinator(policy=ElicitationPolicy.AWAIT_RESPONSE, timeout_seconds=5)

        assert await asyncio.wait_for(coordinator.elicit("Your name?"), timeout=1) is None
