# record_store.py

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from config_manager import ConfigManager
from errors import ConflictError, RecordNotFound, TransportError
from models import AuditEntry, Ticket, TicketPriority, TicketStatus

logger = logging.getLogger(__name__)


def ticket_from_row(row: Dict[str, Any]) -> Ticket:
    return Ticket(
        id=str(row["id"]),
        number=int(row["number"]),
        subject=row.get("subject") or "",
        description=row.get("description") or "",
        status=TicketStatus(row.get("status") or TicketStatus.NEW.value),
        priority=TicketPriority(row.get("priority") or TicketPriority.MEDIUM.value),
        agent_id=row.get("agent_id"),
    )


class RecordStore(ABC):
    """Data-access interface the agent core uses for tickets."""

    @abstractmethod
    async def get_by_number(self, number: int) -> Ticket:
        """Raises RecordNotFound for an unknown number, TransportError on backend failure."""

    @abstractmethod
    async def update_if_owner_is(self, ticket_id: str, expected_owner: Optional[str], patch: Dict[str, Any],
                                 expected_status: Optional[TicketStatus] = None) -> Ticket:
        """
        Applies `patch` only if the ticket's owner equals `expected_owner`
        (None meaning unowned) and, when given, its status equals
        `expected_status`. Raises ConflictError when no row matched.
        """

    @abstractmethod
    async def insert_comment(self, ticket_id: str, agent_id: str, content: str, is_internal: bool) -> None:
        """Raises TransportError when the comment was not stored."""

    @abstractmethod
    async def insert_audit_entry(self, entry: AuditEntry) -> None:
        """Best effort; callers swallow failures."""


class SupabaseRecordStore(RecordStore):
    """
    RecordStore over Supabase tables. The conditional updates are single
    PostgREST UPDATE ... WHERE statements, so two concurrent claims can never
    both match the 'agent_id IS NULL' guard.
    """
    def __init__(self, config: ConfigManager, client: Optional[AsyncClient] = None):
        self.config = config
        self.client: Optional[AsyncClient] = client
        self.tickets_table = config.tables['tickets']
        self.activities_table = config.tables['activities']
        self.audit_table = config.tables['audit']

    async def connect(self) -> None:
        """Creates the Supabase client from configured credentials if one was not injected."""
        if self.client is not None:
            return
        if not all([self.config.supabase_url, self.config.supabase_key]):
            raise TransportError("Supabase URL or service role key not configured.")
        try:
            logger.info(f"Connecting to Supabase at {self.config.supabase_url}")
            self.client = await acreate_client(self.config.supabase_url, self.config.supabase_key)
        except Exception as e:
            logger.error(f"Could not create Supabase client: {e}", exc_info=True)
            raise TransportError("Could not connect to the ticket database.", cause=e) from e

    async def _execute(self, query, what: str):
        await self.connect()
        try:
            return await query.execute()
        except APIError as e:
            logger.error(f"Supabase API error while {what}: {e.message} (code {e.code})", exc_info=True)
            raise TransportError(f"Ticket database rejected the request while {what}.", cause=e) from e
        except Exception as e:
            logger.error(f"Unexpected error while {what}: {e}", exc_info=True)
            raise TransportError(f"Ticket database unavailable while {what}.", cause=e) from e

    def _table(self, name: str):
        if self.client is None:
            raise TransportError("Supabase client is not initialized.")
        return self.client.table(name)

    async def get_by_number(self, number: int) -> Ticket:
        await self.connect()
        query = self._table(self.tickets_table).select("*").eq("number", number).limit(1)
        response = await self._execute(query, f"loading ticket #{number}")
        rows = response.data or []
        if not rows:
            raise RecordNotFound(number)
        return ticket_from_row(rows[0])

    async def update_if_owner_is(self, ticket_id: str, expected_owner: Optional[str], patch: Dict[str, Any],
                                 expected_status: Optional[TicketStatus] = None) -> Ticket:
        await self.connect()
        values = {k: (v.value if isinstance(v, (TicketStatus, TicketPriority)) else v) for k, v in patch.items()}
        values["updated_at"] = datetime.now(timezone.utc).isoformat()

        query = self._table(self.tickets_table).update(values).eq("id", ticket_id)
        if expected_owner is None:
            query = query.is_("agent_id", "null")
        else:
            query = query.eq("agent_id", expected_owner)
        if expected_status is not None:
            query = query.eq("status", expected_status.value)

        response = await self._execute(query, f"updating ticket {ticket_id}")
        rows = response.data or []
        if not rows:
            raise ConflictError(f"Ticket {ticket_id} changed concurrently; update not applied.")
        return ticket_from_row(rows[0])

    async def insert_comment(self, ticket_id: str, agent_id: str, content: str, is_internal: bool) -> None:
        await self.connect()
        query = self._table(self.activities_table).insert({
            "ticket_id": ticket_id,
            "user_id": agent_id,
            "content": content,
            "activity_type": "comment",
            "is_internal": is_internal,
        })
        await self._execute(query, f"adding a comment to ticket {ticket_id}")

    async def insert_audit_entry(self, entry: AuditEntry) -> None:
        await self.connect()
        query = self._table(self.audit_table).insert(entry.model_dump(mode="json"))
        await self._execute(query, f"writing the audit entry for ticket #{entry.ticket_number}")
