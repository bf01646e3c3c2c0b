# models.py

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TicketStatus(str, Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ActionType(str, Enum):
    CLAIM = "claim"
    RELEASE = "release"
    SET_STATUS = "set_status"
    SET_PRIORITY = "set_priority"
    COMMENT = "comment"


class Ticket(BaseModel):
    """
    A support ticket as read from the record store.
    The agent core never mutates this object; changes go through ActionGateway.
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(..., description="Storage key of the ticket row")
    number: int = Field(..., description="Human-facing ticket number, e.g. 101 for '#101'")
    subject: str = Field("", description="Subject line of the ticket")
    description: str = Field("", description="Body of the ticket as submitted")
    status: TicketStatus = Field(TicketStatus.NEW, description="Current workflow status")
    priority: TicketPriority = Field(TicketPriority.MEDIUM, description="Current priority")
    agent_id: Optional[str] = Field(None, description="Owning agent, None when unassigned")


class Intent(BaseModel):
    """Classification of one inbound operator message."""
    has_target_record: bool = False
    target_number: Optional[int] = None
    needs_search: bool = False
    needs_action: bool = False
    command: Optional[str] = Field(None, description="Normalized action command, if the classifier produced one")


class ActionRequest(BaseModel):
    """
    Structured decode of a natural-language command.
    Exactly one action type per request; the target number is always present.
    """
    model_config = ConfigDict(frozen=True)

    action_type: ActionType
    ticket_number: int
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    comment: Optional[str] = None
    is_internal: bool = False


class ActionResult(BaseModel):
    """Outcome of applying an ActionRequest. Either the change committed or nothing did."""
    success: bool
    message: str
    ticket: Optional[Ticket] = None
    error: Optional[str] = None
    error_kind: Optional[str] = Field(None, description="validation | conflict | not_found | transport")
    duplicate: bool = Field(False, description="True when a repeated comment was suppressed")


class ScoredMatch(BaseModel):
    """A raw hit from the semantic search backend."""
    id: str
    similarity: float = Field(..., ge=0.0, le=1.0)
    title: str = ""
    content: str = ""
    number: Optional[int] = None
    category: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None


class SearchResult(BaseModel):
    kind: str = Field(..., description="'record' or 'article'")
    id: str
    number: Optional[int] = None
    title: str = ""
    excerpt: str = ""
    similarity: float = Field(..., ge=0.0, le=1.0)
    category: Optional[str] = None
    status: Optional[str] = None


class SearchResults(BaseModel):
    records: List[SearchResult] = Field(default_factory=list)
    articles: List[SearchResult] = Field(default_factory=list)
    anchor: Optional[Ticket] = Field(None, description="Ticket the query was anchored to, if any")

    @property
    def is_empty(self) -> bool:
        return not self.records and not self.articles


class AuditEntry(BaseModel):
    ticket_id: Optional[str] = None
    ticket_number: int
    agent_id: str
    action_type: ActionType
    success: bool
    details: str = ""


class Source(BaseModel):
    type: str = Field(..., description="'ticket' or 'kb'")
    id: str
    title: str = ""
    excerpt: str = ""


class ActionRecord(BaseModel):
    type: str
    status: str = Field(..., description="'success' or 'failed'")
    details: str = ""


class AgentResponse(BaseModel):
    """The only externally visible artifact of a run."""
    content: str
    type: str = "chat"
    sources: List[Source] = Field(default_factory=list)
    actions: List[ActionRecord] = Field(default_factory=list)
    trace_id: str


class TraceEventType(str, Enum):
    CHAIN_START = "chain_start"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    CHAIN_END = "chain_end"
    CHAIN_ERROR = "chain_error"


class TraceEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    sequence: int
    type: TraceEventType
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
