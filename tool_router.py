# tool_router.py

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

from action_gateway import ActionGateway
from command_parser import CommandParser
from errors import ParseError, RecordNotFound, TransportError
from search_gateway import SearchGateway

logger = logging.getLogger(__name__)

SEARCH_TOOL = "search"
ACTION_TOOL = "action"

SEARCH_WITH_TICKET_CALL = re.compile(r'^\s*search_with_ticket\(\s*#?(\d+)\s*,\s*"(.*)"\s*\)\s*$', re.DOTALL)
SEARCH_BY_QUERY_CALL = re.compile(r'^\s*search_by_query\(\s*"(.*)"\s*\)\s*$', re.DOTALL)
LOOKUP_TICKET_CALL = re.compile(r"^\s*lookup_ticket\(\s*#?(\d+)\s*\)\s*$")
TICKET_PREFIX = re.compile(r"^\s*ticket:\s*#?(\d+)\s+(.+)$", re.IGNORECASE | re.DOTALL)
FUNCTION_CALL_START = re.compile(r"^\s*(?:search_(?:with_ticket|by_query)|lookup_ticket)\b")

SEARCH_USAGE = ('Invalid search call. Use search_by_query("query"), '
                'search_with_ticket(123, "query"), lookup_ticket(123), "ticket:123 query" or plain text.')


def _dumps(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)


def parse_search_input(tool_input: str) -> Tuple[str, Optional[int]]:
    """
    Decodes a search tool call into (query, anchor ticket number).
    Raises ValueError for empty input or a malformed function-call form.
    """
    match = SEARCH_WITH_TICKET_CALL.match(tool_input)
    if match:
        return match.group(2).strip(), int(match.group(1))
    match = SEARCH_BY_QUERY_CALL.match(tool_input)
    if match:
        query = match.group(1).strip()
        if not query:
            raise ValueError(SEARCH_USAGE)
        return query, None
    if FUNCTION_CALL_START.match(tool_input):
        raise ValueError(SEARCH_USAGE)
    match = TICKET_PREFIX.match(tool_input)
    if match:
        return match.group(2).strip(), int(match.group(1))
    if not tool_input.strip():
        raise ValueError(SEARCH_USAGE)
    return tool_input.strip(), None


class ToolRouter:
    """
    Exposes the two tools the orchestrator may call, each string in, JSON
    string out. Nothing raised by a gateway escapes: every failure becomes a
    {"status": "error", ...} payload so the run can continue degraded.
    """
    def __init__(self, search_gateway: SearchGateway, action_gateway: ActionGateway,
                 parser: Optional[CommandParser] = None):
        self.search_gateway = search_gateway
        self.action_gateway = action_gateway
        self.parser = parser or CommandParser()

    async def call(self, tool: str, tool_input: str, agent_id: str) -> str:
        if tool == SEARCH_TOOL:
            return await self.search(tool_input)
        if tool == ACTION_TOOL:
            return await self.action(tool_input, agent_id)
        logger.warning(f"Unknown tool requested: {tool!r}")
        return _dumps({"status": "error", "error_kind": "unknown_tool",
                       "message": f"Unknown tool '{tool}'. Available tools: {SEARCH_TOOL}, {ACTION_TOOL}."})

    async def search(self, tool_input: str) -> str:
        logger.info(f"Search tool called with: {tool_input!r}")
        lookup = LOOKUP_TICKET_CALL.match(tool_input)
        if lookup:
            return await self._lookup(int(lookup.group(1)))

        try:
            query, ticket_number = parse_search_input(tool_input)
        except ValueError as e:
            return _dumps({"status": "error", "error_kind": "parse", "message": str(e)})

        function_called = "search_with_ticket" if ticket_number is not None else "search_by_query"
        parameters = {"ticket_number": ticket_number, "search_query": query}
        try:
            results = await self.search_gateway.search(query, ticket_number)
        except RecordNotFound as e:
            return _dumps({"status": "error", "error_kind": "not_found", "function_called": function_called,
                           "parameters": parameters, "message": str(e)})
        except TransportError as e:
            logger.error(f"Search failed: {e}")
            return _dumps({"status": "error", "error_kind": "transport", "function_called": function_called,
                           "parameters": parameters, "message": "Search failed. Please try again."})
        except Exception as e:
            logger.error(f"Unexpected error in search tool: {e}", exc_info=True)
            return _dumps({"status": "error", "error_kind": "internal", "function_called": function_called,
                           "parameters": parameters, "message": "Search failed. Please try again."})

        payload: Dict[str, Any] = {
            "status": "no_results" if results.is_empty else "success",
            "function_called": function_called,
            "parameters": parameters,
            "ticket": results.anchor.model_dump(mode="json") if results.anchor else None,
            "records": [r.model_dump(mode="json") for r in results.records],
            "articles": [a.model_dump(mode="json") for a in results.articles],
        }
        if results.is_empty:
            payload["message"] = (
                f"No matches found for content similar to ticket #{ticket_number}. "
                f"Try a different ticket or a more general search."
                if ticket_number is not None
                else "No matches found for your search. Try rephrasing or using different terms."
            )
        return _dumps(payload)

    async def _lookup(self, ticket_number: int) -> str:
        parameters = {"ticket_number": ticket_number, "search_query": None}
        try:
            ticket = await self.search_gateway.lookup(ticket_number)
        except RecordNotFound as e:
            return _dumps({"status": "error", "error_kind": "not_found", "function_called": "lookup_ticket",
                           "parameters": parameters, "message": str(e)})
        except TransportError as e:
            logger.error(f"Ticket lookup failed: {e}")
            return _dumps({"status": "error", "error_kind": "transport", "function_called": "lookup_ticket",
                           "parameters": parameters, "message": "Ticket lookup failed. Please try again."})
        except Exception as e:
            logger.error(f"Unexpected error in ticket lookup: {e}", exc_info=True)
            return _dumps({"status": "error", "error_kind": "internal", "function_called": "lookup_ticket",
                           "parameters": parameters, "message": "Ticket lookup failed. Please try again."})
        return _dumps({
            "status": "success",
            "function_called": "lookup_ticket",
            "parameters": parameters,
            "ticket": ticket.model_dump(mode="json"),
            "records": [],
            "articles": [],
        })

    async def action(self, command: str, agent_id: str) -> str:
        logger.info(f"Action tool called with: {command!r}")
        try:
            request = self.parser.parse(command)
        except ParseError as e:
            logger.info(f"Action command rejected ({e.kind.value}): {e.message}")
            return _dumps({"status": "error", "success": False, "error_kind": e.kind.value, "message": e.message})

        try:
            result = await self.action_gateway.apply(request, agent_id)
        except Exception as e:
            logger.error(f"Unexpected error in action tool: {e}", exc_info=True)
            return _dumps({"status": "error", "success": False, "error_kind": "internal",
                           "action_type": request.action_type.value, "ticket_number": request.ticket_number,
                           "message": "The ticket action could not be completed."})

        return _dumps({
            "status": "success" if result.success else "failed",
            "success": result.success,
            "action_type": request.action_type.value,
            "ticket_number": request.ticket_number,
            "message": result.message,
            "error_kind": result.error_kind,
            "duplicate": result.duplicate,
            "ticket": result.ticket.model_dump(mode="json") if result.ticket else None,
        })
