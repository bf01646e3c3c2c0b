"""End-to-end tests for the orchestrator over in-memory backends."""

from unittest.mock import AsyncMock

import pytest

from agent import FALLBACK_MESSAGE
from models import TicketStatus, TraceEventType
from tests.conftest import AGENT_ID


class TestSupportAgent:

    @pytest.mark.asyncio
    async def test_ticket_lookup(self, support_agent, store):
        store.add(101, subject="Login issue", description="User cannot log in after password reset")

        response = await support_agent.process_message("what is ticket #101 about?", AGENT_ID)

        assert "Ticket #101" in response.content
        assert "Login issue" in response.content
        assert response.actions == []
        assert any(s.type == "ticket" and s.id == "101" for s in response.sources)

    @pytest.mark.asyncio
    async def test_claim(self, support_agent, store):
        store.add(55, subject="Broken laptop")

        response = await support_agent.process_message("assign ticket #55 to me", AGENT_ID)

        assert store.tickets[55].agent_id == AGENT_ID
        assert store.tickets[55].status == TicketStatus.IN_PROGRESS
        assert [(a.type, a.status) for a in response.actions] == [("claim", "success")]
        assert response.type == "action"

    @pytest.mark.asyncio
    async def test_illegal_transition(self, support_agent, store):
        store.add(9, status=TicketStatus.NEW, agent_id=AGENT_ID)

        response = await support_agent.process_message("mark ticket #9 as closed", AGENT_ID)

        assert len(response.actions) == 1
        assert response.actions[0].status == "failed"
        assert "Invalid status transition" in response.actions[0].details
        assert store.tickets[9].status == TicketStatus.NEW

    @pytest.mark.asyncio
    async def test_unexpected_error_gives_fallback(self, support_agent, router, tracer, store):
        store.add(3)
        router.call = AsyncMock(side_effect=RuntimeError("router exploded"))

        response = await support_agent.process_message("assign ticket #3 to me", AGENT_ID)

        assert response.content == FALLBACK_MESSAGE
        assert response.type == "chat"
        assert response.actions == []
        events = tracer.get_trace(response.trace_id).events
        assert events[-1].type == TraceEventType.CHAIN_ERROR
        assert events[-1].payload["message"] == "router exploded"

    @pytest.mark.asyncio
    async def test_same_input_same_response(self, support_agent, store):
        store.add(12, subject="VPN drops", status=TicketStatus.RESOLVED)

        first = await support_agent.process_message("what is ticket #12 about?", AGENT_ID)
        second = await support_agent.process_message("what is ticket #12 about?", AGENT_ID)

        assert first.trace_id != second.trace_id
        assert first.model_dump(exclude={"trace_id"}) == second.model_dump(exclude={"trace_id"})

    @pytest.mark.asyncio
    async def test_trace_events_in_order(self, support_agent, tracer, store):
        store.add(55)

        response = await support_agent.process_message("assign ticket #55 to me", AGENT_ID)

        types = [e.type for e in tracer.get_trace(response.trace_id).events]
        assert types == [TraceEventType.CHAIN_START, TraceEventType.TOOL_CALL,
                         TraceEventType.TOOL_RESULT, TraceEventType.CHAIN_END]

    @pytest.mark.asyncio
    async def test_tool_error_is_traced_but_run_completes(self, support_agent, tracer):
        response = await support_agent.process_message("assign this one to me", AGENT_ID)

        assert response.content != FALLBACK_MESSAGE
        types = [e.type for e in tracer.get_trace(response.trace_id).events]
        assert TraceEventType.CHAIN_ERROR in types
        assert types[-1] == TraceEventType.CHAIN_END

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["show me ticket #101", "ticket #101 status", "summarize #101"])
    async def test_bare_ticket_reference_is_looked_up(self, support_agent, store, semantic_search, message):
        store.add(101, subject="Login issue", description="User cannot log in after password reset")

        response = await support_agent.process_message(message, AGENT_ID)

        assert response.content.startswith("Ticket #101 is about 'Login issue'. The ticket is waiting to be assigned.")
        assert "User cannot log in after password reset" in response.content
        assert [(s.type, s.id) for s in response.sources] == [("ticket", "101")]
        assert response.type == "information"
        assert response.actions == []
        assert semantic_search.embedded == []

    @pytest.mark.asyncio
    async def test_bare_reference_to_unknown_ticket(self, support_agent):
        response = await support_agent.process_message("show me ticket #404", AGENT_ID)

        assert "Ticket #404 not found" in response.content
        assert response.type == "complex"
        assert response.sources == []

    @pytest.mark.asyncio
    async def test_how_to_question_leaves_ticket_alone(self, support_agent, store):
        store.add(7, status=TicketStatus.IN_PROGRESS, agent_id=AGENT_ID)

        response = await support_agent.process_message("how do I close ticket #7?", AGENT_ID)

        assert store.tickets[7].status == TicketStatus.IN_PROGRESS
        assert response.actions == []
