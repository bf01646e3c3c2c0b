"""Pytest configuration and fixtures."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from action_gateway import ActionGateway
from agent import SupportAgent
from config_manager import ConfigManager
from dedup_cache import InMemoryCommentDedupCache
from errors import ConflictError, RecordNotFound, TransportError
from intent_classifier import IntentClassifier
from models import AuditEntry, ScoredMatch, Ticket, TicketPriority, TicketStatus
from record_store import RecordStore
from response_synthesizer import ResponseSynthesizer
from search_gateway import SearchGateway
from semantic_search import SemanticSearch
from tool_router import ToolRouter
from trace_recorder import TraceRecorder

TEST_INI = """
[General]
AgentName = TestAgent
MaxRetainedTraces = 10

[Dedup]
WindowSeconds = 5
PurgeAfterSeconds = 60
"""

AGENT_ID = "agent-1"
OTHER_AGENT_ID = "agent-2"


class FakeRecordStore(RecordStore):
    """In-memory RecordStore. The check-and-set in update_if_owner_is has no await inside it, so it is atomic."""

    def __init__(self):
        self.tickets: Dict[int, Ticket] = {}
        self.comments: List[Dict[str, Any]] = []
        self.audit: List[AuditEntry] = []
        self.fail_audit = False
        self.fail_comments = False
        self.fail_reads = False

    def add(self, number: int, subject: str = "", description: str = "",
            status: TicketStatus = TicketStatus.NEW, priority: TicketPriority = TicketPriority.MEDIUM,
            agent_id: Optional[str] = None) -> Ticket:
        ticket = Ticket(id=f"t-{number}", number=number, subject=subject, description=description,
                        status=status, priority=priority, agent_id=agent_id)
        self.tickets[number] = ticket
        return ticket

    async def get_by_number(self, number: int) -> Ticket:
        await asyncio.sleep(0)
        if self.fail_reads:
            raise TransportError("database unreachable")
        if number not in self.tickets:
            raise RecordNotFound(number)
        return self.tickets[number]

    async def update_if_owner_is(self, ticket_id, expected_owner, patch, expected_status=None) -> Ticket:
        await asyncio.sleep(0)
        number = next(n for n, t in self.tickets.items() if t.id == ticket_id)
        current = self.tickets[number]
        if current.agent_id != expected_owner:
            raise ConflictError(f"Ticket {ticket_id} changed concurrently")
        if expected_status is not None and current.status != expected_status:
            raise ConflictError(f"Ticket {ticket_id} changed concurrently")
        updated = current.model_copy(update=patch)
        self.tickets[number] = updated
        return updated

    async def insert_comment(self, ticket_id, agent_id, content, is_internal) -> None:
        await asyncio.sleep(0)
        if self.fail_comments:
            raise TransportError("comment insert failed")
        self.comments.append({"ticket_id": ticket_id, "user_id": agent_id,
                              "content": content, "is_internal": is_internal})

    async def insert_audit_entry(self, entry: AuditEntry) -> None:
        if self.fail_audit:
            raise TransportError("audit table missing")
        self.audit.append(entry)


class FakeSemanticSearch(SemanticSearch):
    def __init__(self):
        self.records: List[ScoredMatch] = []
        self.articles: List[ScoredMatch] = []
        self.embedded: List[str] = []
        self.fail_articles = False

    async def embed(self, text: str) -> List[float]:
        self.embedded.append(text)
        return [0.1, 0.2, 0.3]

    async def query_records(self, vector, limit) -> List[ScoredMatch]:
        await asyncio.sleep(0)
        return self.records[:limit]

    async def query_articles(self, vector, limit) -> List[ScoredMatch]:
        await asyncio.sleep(0)
        if self.fail_articles:
            raise TransportError("vector index offline")
        return self.articles[:limit]


@pytest.fixture
def config(tmp_path) -> ConfigManager:
    ini_path = tmp_path / "config.ini"
    ini_path.write_text(TEST_INI)
    return ConfigManager(ini_file_path=str(ini_path), env_file_path=str(tmp_path / ".env"))


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def semantic_search() -> FakeSemanticSearch:
    return FakeSemanticSearch()


@pytest.fixture
def clock():
    """Manually advanced monotonic clock for the dedup cache."""
    class Clock:
        now = 1000.0

        def __call__(self):
            return self.now

        def advance(self, seconds: float):
            self.now += seconds

    return Clock()


@pytest.fixture
def dedup_cache(clock) -> InMemoryCommentDedupCache:
    return InMemoryCommentDedupCache(window_seconds=5, purge_after_seconds=60, clock=clock)


@pytest.fixture
def action_gateway(config, store, dedup_cache) -> ActionGateway:
    return ActionGateway(config, store, dedup_cache)


@pytest.fixture
def search_gateway(config, store, semantic_search) -> SearchGateway:
    return SearchGateway(config, semantic_search, store)


@pytest.fixture
def router(search_gateway, action_gateway) -> ToolRouter:
    return ToolRouter(search_gateway, action_gateway)


@pytest.fixture
def tracer() -> TraceRecorder:
    return TraceRecorder(max_runs=10)


@pytest.fixture
def support_agent(config, router, tracer) -> SupportAgent:
    return SupportAgent(config, IntentClassifier(config), router, ResponseSynthesizer(config), tracer)
