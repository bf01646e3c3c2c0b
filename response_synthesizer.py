# response_synthesizer.py

import logging
from typing import Any, Dict, List, Optional

from config_manager import ConfigManager
from models import ActionRecord, AgentResponse, Intent, Source
from search_gateway import truncate

logger = logging.getLogger(__name__)

STATUS_PHRASES = {
    "new": "is waiting to be assigned",
    "in_progress": "is being worked on",
    "resolved": "has been resolved",
    "closed": "has been closed",
    "cancelled": "was cancelled",
}

ACTION_LABELS = {
    "claim": "assignment",
    "release": "unassignment",
    "set_status": "status change",
    "set_priority": "priority change",
    "comment": "comment",
}

HELP_TEXT = (
    "I can look up tickets, search similar tickets and the knowledge base, or update a ticket for you. "
    "Try something like \"what is ticket #123 about?\" or \"assign ticket #123 to me\"."
)


class ResponseSynthesizer:
    """
    Turns the decoded tool outputs of one run into the AgentResponse shown to
    the operator: a plain-language message plus the sources and actions behind it.

    Precondition: callers only pass tool output the operator is allowed to see.
    Ticket activity (and so internal notes) is never part of the tool output.
    """
    def __init__(self, config: ConfigManager):
        self.config = config

    def synthesize(self, intent: Intent, search: Optional[Dict[str, Any]], action: Optional[Dict[str, Any]],
                   trace_id: str) -> AgentResponse:
        sections: List[str] = []
        sources: List[Source] = []
        actions: List[ActionRecord] = []

        ticket = self._resolved_ticket(search, action)
        if ticket:
            sections.append(self._ticket_summary(ticket, include_description=action is None))
            sources.append(Source(
                type="ticket",
                id=str(ticket["number"]),
                title=ticket.get("subject") or "",
                excerpt=truncate(ticket.get("description") or "", self.config.excerpt_length),
            ))

        if search is not None:
            text, used = self._search_section(search)
            if text:
                sections.append(text)
            sources.extend(s for s in used if not any(s.type == o.type and s.id == o.id for o in sources))

        if action is not None:
            sections.append(self._action_section(action))
            if action.get("action_type"):
                actions.append(ActionRecord(
                    type=action["action_type"],
                    status="success" if action.get("success") else "failed",
                    details=action.get("message", ""),
                ))

        if not sections:
            sections.append(HELP_TEXT)

        response = AgentResponse(
            content="\n\n".join(sections).strip(),
            type=self._response_type(search, action),
            sources=sources,
            actions=actions,
            trace_id=trace_id,
        )
        logger.debug(f"Synthesized {response.type} response with {len(sources)} source(s), {len(actions)} action(s)")
        return response

    @staticmethod
    def _resolved_ticket(search: Optional[Dict[str, Any]], action: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        # Prefer the post-action state when an action committed.
        if action and action.get("success") and action.get("ticket"):
            return action["ticket"]
        if search and search.get("ticket"):
            return search["ticket"]
        return None

    @staticmethod
    def _ticket_summary(ticket: Dict[str, Any], include_description: bool) -> str:
        status = ticket.get("status") or "new"
        phrase = STATUS_PHRASES.get(status, f"is marked as {status}")
        summary = f"Ticket #{ticket['number']} is about '{ticket.get('subject', '')}'. The ticket {phrase}."
        if include_description and ticket.get("description"):
            summary += f"\n\nDescription: {ticket['description']}"
        return summary

    def _search_section(self, search: Dict[str, Any]):
        status = search.get("status")
        if status == "error":
            return search.get("message") or "I wasn't able to search right now.", []
        if status == "success" and search.get("function_called") == "lookup_ticket":
            return "", []
        if status == "no_results":
            return "I couldn't find any related tickets or knowledge base articles.", []

        used: List[Source] = []
        lines: List[str] = []
        articles = [a for a in search.get("articles", []) if a.get("similarity", 0) > self.config.article_floor]
        for article in articles[:self.config.max_articles]:
            category = f" ({article['category']})" if article.get("category") else ""
            lines.append(f"From our knowledge base{category}: {article.get('title', '')}. {article.get('excerpt', '')}".strip())
            used.append(Source(type="kb", id=article["id"], title=article.get("title", ""),
                               excerpt=article.get("excerpt", "")))

        records = [r for r in search.get("records", []) if r.get("similarity", 0) > self.config.record_floor]
        for record in records[:self.config.max_records]:
            label = f"#{record['number']}" if record.get("number") is not None else record["id"]
            lines.append(f"Similar ticket {label}: {record.get('title', '')}")
            used.append(Source(type="ticket", id=str(record.get("number") or record["id"]),
                               title=record.get("title", ""), excerpt=record.get("excerpt", "")))

        if not lines:
            return "I didn't find anything closely related in past tickets or the knowledge base.", []
        return "Here's what I found:\n\n" + "\n\n".join(lines), used

    @staticmethod
    def _action_section(action: Dict[str, Any]) -> str:
        message = action.get("message") or ""
        if action.get("status") == "error" and not action.get("action_type"):
            return f"I couldn't work out which ticket change you wanted. {message}".strip()
        if action.get("success"):
            return message
        label = ACTION_LABELS.get(action.get("action_type"), "ticket update")
        return f"I couldn't complete the {label} on ticket #{action.get('ticket_number')}: {message}"

    @staticmethod
    def _response_type(search: Optional[Dict[str, Any]], action: Optional[Dict[str, Any]]) -> str:
        if (search and search.get("status") == "error") or (action and action.get("status") == "error"):
            return "complex"
        if action and action.get("success"):
            return "action"
        if search and search.get("status") == "success":
            return "information"
        return "chat"
