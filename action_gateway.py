# action_gateway.py

import asyncio
import logging
from typing import Awaitable, Callable, Dict, FrozenSet, Optional

from config_manager import ConfigManager
from dedup_cache import CommentDedupCache, DedupKey, InMemoryCommentDedupCache
from errors import ConflictError, RecordNotFound, TransportError, ValidationError
from models import ActionRequest, ActionResult, ActionType, AuditEntry, Ticket, TicketPriority, TicketStatus
from record_store import RecordStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.NEW: frozenset({TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.CANCELLED, TicketStatus.CLOSED}),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED, TicketStatus.IN_PROGRESS}),
    TicketStatus.CLOSED: frozenset({TicketStatus.IN_PROGRESS}),
    TicketStatus.CANCELLED: frozenset({TicketStatus.IN_PROGRESS}),
}


def is_allowed_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class ActionGateway:
    """
    The only component that mutates tickets. Every operation checks ownership
    and transition rules, then commits through a single conditional update so
    concurrent writers cannot both win. Each attempt, successful or not, is
    written to the audit log on a best-effort basis.
    """
    def __init__(self, config: ConfigManager, record_store: RecordStore,
                 dedup_cache: Optional[CommentDedupCache] = None):
        self.config = config
        self.record_store = record_store
        self.dedup_cache = dedup_cache or InMemoryCommentDedupCache(
            window_seconds=config.dedup_window_seconds,
            purge_after_seconds=config.dedup_purge_after_seconds,
        )
        # Comment inserts still running, keyed like the dedup cache. Resolves to True once stored.
        self._pending_comments: Dict[DedupKey, "asyncio.Future[bool]"] = {}
        self._handlers: Dict[ActionType, Callable[[ActionRequest, str], Awaitable[ActionResult]]] = {
            ActionType.CLAIM: lambda r, agent: self.claim(r.ticket_number, agent),
            ActionType.RELEASE: lambda r, agent: self.release(r.ticket_number, agent),
            ActionType.SET_STATUS: lambda r, agent: self.set_status(r.ticket_number, agent, r.status),
            ActionType.SET_PRIORITY: lambda r, agent: self.set_priority(r.ticket_number, agent, r.priority),
            ActionType.COMMENT: lambda r, agent: self.add_comment(r.ticket_number, agent, r.comment, r.is_internal),
        }
        missing = set(ActionType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler registered for action types: {sorted(m.value for m in missing)}")

    async def apply(self, request: ActionRequest, agent_id: str) -> ActionResult:
        """Dispatches a parsed ActionRequest to the matching operation."""
        return await self._handlers[request.action_type](request, agent_id)

    async def claim(self, ticket_number: int, agent_id: str) -> ActionResult:
        async def operation() -> ActionResult:
            ticket = await self.record_store.get_by_number(ticket_number)
            if ticket.agent_id is not None:
                owner = "you" if ticket.agent_id == agent_id else "another agent"
                raise ValidationError(f"Ticket #{ticket_number} is already assigned to {owner}")
            try:
                updated = await self.record_store.update_if_owner_is(
                    ticket.id, None, {"agent_id": agent_id, "status": TicketStatus.IN_PROGRESS})
            except ConflictError as e:
                raise ConflictError(f"Ticket #{ticket_number} is already assigned to another agent") from e
            return ActionResult(success=True, message=f"Ticket #{ticket_number} assigned to you.", ticket=updated)

        return await self._run(ActionType.CLAIM, ticket_number, agent_id, operation, note="Ticket self-assigned")

    async def release(self, ticket_number: int, agent_id: str) -> ActionResult:
        async def operation() -> ActionResult:
            ticket = await self._owned_ticket(ticket_number, agent_id, "Can only unassign your own tickets")
            updated = await self.record_store.update_if_owner_is(
                ticket.id, agent_id, {"agent_id": None, "status": TicketStatus.NEW})
            return ActionResult(success=True, message=f"Ticket #{ticket_number} unassigned.", ticket=updated)

        return await self._run(ActionType.RELEASE, ticket_number, agent_id, operation, note="Ticket unassigned")

    async def set_status(self, ticket_number: int, agent_id: str, status: TicketStatus) -> ActionResult:
        async def operation() -> ActionResult:
            if status is None:
                raise ValidationError(f"No status specified for ticket #{ticket_number}")
            ticket = await self._owned_ticket(ticket_number, agent_id, "Can only update status of your own tickets")
            if not is_allowed_transition(ticket.status, status):
                allowed = ", ".join(sorted(s.value for s in ALLOWED_TRANSITIONS.get(ticket.status, ()))) or "none"
                raise ValidationError(
                    f"Invalid status transition for ticket #{ticket_number}: cannot move from "
                    f"'{ticket.status.value}' to '{status.value}'. Allowed next statuses: {allowed}"
                )
            updated = await self.record_store.update_if_owner_is(
                ticket.id, agent_id, {"status": status}, expected_status=ticket.status)
            return ActionResult(
                success=True,
                message=f"Ticket #{ticket_number} status changed from {ticket.status.value} to {status.value}.",
                ticket=updated,
            )

        return await self._run(ActionType.SET_STATUS, ticket_number, agent_id, operation,
                               note=f"Status change to {status.value if status else 'unspecified'} requested")

    async def set_priority(self, ticket_number: int, agent_id: str, priority: TicketPriority,
                           note: Optional[str] = None) -> ActionResult:
        async def operation() -> ActionResult:
            if priority is None:
                raise ValidationError(f"No priority specified for ticket #{ticket_number}")
            ticket = await self._owned_ticket(ticket_number, agent_id, "Can only update priority of your own tickets")
            updated = await self.record_store.update_if_owner_is(ticket.id, agent_id, {"priority": priority})
            message = f"Ticket #{ticket_number} priority set to {priority.value}."
            if note:
                # The priority change has already committed; a lost note is reported, not rolled back.
                try:
                    await self.record_store.insert_comment(ticket.id, agent_id, note, True)
                except TransportError as e:
                    logger.warning(f"Priority note for ticket #{ticket_number} was not stored: {e}")
                    message += " The accompanying note could not be saved."
            return ActionResult(success=True, message=message, ticket=updated)

        return await self._run(ActionType.SET_PRIORITY, ticket_number, agent_id, operation,
                               note=f"Priority change to {priority.value if priority else 'unspecified'} requested")

    async def add_comment(self, ticket_number: int, agent_id: str, content: str,
                          is_internal: bool = False) -> ActionResult:
        async def operation() -> ActionResult:
            ticket = await self._owned_ticket(ticket_number, agent_id, "Can only comment on your own tickets")
            key = (ticket_number, content.strip())
            while self.dedup_cache.check_and_mark(key):
                pending = self._pending_comments.get(key)
                if pending is None or await asyncio.shield(pending):
                    logger.info(f"Comment on ticket #{ticket_number} already processed; skipping duplicate.")
                    return ActionResult(success=True, message="Comment already processed", ticket=ticket,
                                        duplicate=True)
                # The earlier insert failed and released the key; store it ourselves.
                logger.info(f"Earlier insert of this comment on ticket #{ticket_number} failed; retrying.")
            await self._insert_comment(key, ticket, agent_id, content.strip(), is_internal)
            kind = "Internal note" if is_internal else "Comment"
            return ActionResult(success=True, message=f"{kind} added to ticket #{ticket_number}.", ticket=ticket)

        return await self._run(ActionType.COMMENT, ticket_number, agent_id, operation,
                               note="Internal note" if is_internal else "Public comment")

    async def _insert_comment(self, key: DedupKey, ticket: Ticket, agent_id: str, content: str,
                              is_internal: bool) -> None:
        pending = asyncio.get_running_loop().create_future()
        self._pending_comments[key] = pending
        try:
            await self.record_store.insert_comment(ticket.id, agent_id, content, is_internal)
        except BaseException:
            self.dedup_cache.forget(key)
            pending.set_result(False)
            raise
        else:
            pending.set_result(True)
        finally:
            if self._pending_comments.get(key) is pending:
                del self._pending_comments[key]

    async def _owned_ticket(self, ticket_number: int, agent_id: str, refusal: str) -> Ticket:
        ticket = await self.record_store.get_by_number(ticket_number)
        if ticket.agent_id != agent_id:
            raise ValidationError(refusal)
        return ticket

    async def _run(self, action_type: ActionType, ticket_number: int, agent_id: str,
                   operation: Callable[[], Awaitable[ActionResult]], note: str) -> ActionResult:
        try:
            result = await operation()
        except RecordNotFound as e:
            result = ActionResult(success=False, message=str(e), error=str(e), error_kind="not_found")
        except ValidationError as e:
            result = ActionResult(success=False, message=str(e), error=str(e), error_kind="validation")
        except ConflictError as e:
            message = str(e) if action_type == ActionType.CLAIM else (
                f"Ticket #{ticket_number} was changed by someone else before the update "
                f"could be applied. Please retry."
            )
            result = ActionResult(success=False, message=message, error=str(e), error_kind="conflict")
        except TransportError as e:
            result = ActionResult(
                success=False,
                message="I couldn't reach the ticket system. Please try again in a moment.",
                error=str(e),
                error_kind="transport",
            )
        except Exception as e:
            logger.error(f"Unexpected error during {action_type.value} on ticket #{ticket_number}: {e}", exc_info=True)
            result = ActionResult(
                success=False,
                message="Something went wrong while updating the ticket.",
                error=str(e),
                error_kind="internal",
            )

        outcome = "succeeded" if result.success else f"failed ({result.error_kind}: {result.error})"
        logger.info(f"Action {action_type.value} on ticket #{ticket_number} by {agent_id} {outcome}")
        await self._audit(action_type, ticket_number, agent_id, result, note)
        return result

    async def _audit(self, action_type: ActionType, ticket_number: int, agent_id: str,
                     result: ActionResult, note: str) -> None:
        entry = AuditEntry(
            ticket_id=result.ticket.id if result.ticket else None,
            ticket_number=ticket_number,
            agent_id=agent_id,
            action_type=action_type,
            success=result.success,
            details=f"{note}: {result.message}",
        )
        try:
            await self.record_store.insert_audit_entry(entry)
        except Exception as e:
            logger.warning(f"Audit entry for {action_type.value} on ticket #{ticket_number} was not written: {e}")
