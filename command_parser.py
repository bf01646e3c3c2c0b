# command_parser.py

import logging
import re
from enum import Enum
from typing import Optional, Tuple, Type

from errors import ParseError, ParseErrorKind
from intent_classifier import extract_ticket_number
from models import ActionRequest, ActionType, TicketPriority, TicketStatus

logger = logging.getLogger(__name__)

VALID_STATUSES = ", ".join(s.value for s in TicketStatus)
VALID_PRIORITIES = ", ".join(p.value for p in TicketPriority)

# Verb patterns, checked in this order.
CLAIM_PATTERN = re.compile(r"\bassign\b.*\bto\s+me\b", re.IGNORECASE)
RELEASE_PATTERN = re.compile(r"\bunassign\b", re.IGNORECASE)
CLOSE_SHORTCUT = re.compile(r"\bclose\s+(?:ticket\s+)?#\d+", re.IGNORECASE)
REOPEN_SHORTCUT = re.compile(r"\b(?:re)?open\s+(?:ticket\s+)?#\d+", re.IGNORECASE)
STATUS_PATTERN = re.compile(r"\bmark\b.*\bas\b|\b(?:set|change|update)\b.*\bstatus\b", re.IGNORECASE)
PRIORITY_PATTERN = re.compile(r"\bpriority\b", re.IGNORECASE)
COMMENT_PATTERN = re.compile(r"\badd\b.*\b(?:comment|note)\b", re.IGNORECASE)

# Value patterns as (pattern, strict). A value may be two words ("in progress"),
# joined with '_'. A strict pattern names the value explicitly ("as X", "to X"), so an
# unknown word there is an invalid value; a loose match ("priority X") is only
# taken when X is a known value.
VALUE = r"([a-z]+)(?:[\s_-]+([a-z]+))?"
STATUS_VALUE_PATTERNS = (
    (re.compile(r"\bstatus\b.*?\bto\s+" + VALUE, re.IGNORECASE), True),
    (re.compile(r"\bas\s+" + VALUE, re.IGNORECASE), True),
    (re.compile(r"\bstatus\s+" + VALUE, re.IGNORECASE), False),
)
PRIORITY_VALUE_PATTERNS = (
    (re.compile(r"\bpriority\b.*?\bto\s+" + VALUE, re.IGNORECASE), True),
    (re.compile(r"\bpriority\s+" + VALUE, re.IGNORECASE), False),
)


class CommandParser:
    """
    Parses a natural-language ticket command (the string a language model or an
    operator would send to the action tool) into an ActionRequest.

    Supported phrasings, in priority order:
      - "assign ticket #123 to me"
      - "unassign ticket #123"
      - "close ticket #123", "reopen ticket #123",
        "mark ticket #123 as resolved", "set status of ticket #123 to closed"
      - "set priority of ticket #123 to high"
      - "add comment to ticket #123: <text>", "add internal note to ticket #123: <text>"
    """

    def parse(self, command: str) -> ActionRequest:
        """
        Args:
            command: The natural-language command.

        Returns:
            The decoded ActionRequest.

        Raises:
            ParseError: with kind NO_TARGET, UNRECOGNIZED_COMMAND,
                INVALID_ENUM_VALUE, MISSING_VALUE or EMPTY_COMMENT.
        """
        # Verbs are only looked for before the first colon, so comment text
        # like "please mark this as done" cannot change the action type.
        head, _, tail = command.partition(":")

        ticket_number = extract_ticket_number(head)
        if ticket_number is None:
            ticket_number = extract_ticket_number(command)
        if ticket_number is None:
            raise ParseError(
                ParseErrorKind.NO_TARGET,
                "No ticket number found in command. Please specify a ticket number (e.g., #123)."
            )

        request = self._decode(head, tail, ticket_number)
        logger.info(f"Parsed command into {request.action_type.value} for ticket #{ticket_number}")
        return request

    def _decode(self, head: str, tail: str, ticket_number: int) -> ActionRequest:
        if CLAIM_PATTERN.search(head):
            return ActionRequest(action_type=ActionType.CLAIM, ticket_number=ticket_number)

        if RELEASE_PATTERN.search(head):
            return ActionRequest(action_type=ActionType.RELEASE, ticket_number=ticket_number)

        if CLOSE_SHORTCUT.search(head):
            return ActionRequest(action_type=ActionType.SET_STATUS, ticket_number=ticket_number,
                                 status=TicketStatus.CLOSED)
        if REOPEN_SHORTCUT.search(head):
            return ActionRequest(action_type=ActionType.SET_STATUS, ticket_number=ticket_number,
                                 status=TicketStatus.IN_PROGRESS)

        if STATUS_PATTERN.search(head):
            status = self._extract_enum(head, STATUS_VALUE_PATTERNS, TicketStatus, "status", VALID_STATUSES)
            return ActionRequest(action_type=ActionType.SET_STATUS, ticket_number=ticket_number, status=status)

        if PRIORITY_PATTERN.search(head):
            priority = self._extract_enum(head, PRIORITY_VALUE_PATTERNS, TicketPriority, "priority", VALID_PRIORITIES)
            return ActionRequest(action_type=ActionType.SET_PRIORITY, ticket_number=ticket_number, priority=priority)

        if COMMENT_PATTERN.search(head):
            content = tail.strip()
            if not content:
                raise ParseError(
                    ParseErrorKind.EMPTY_COMMENT,
                    'No comment content provided. Format should be: "add comment to ticket #123: Your comment here".'
                )
            return ActionRequest(
                action_type=ActionType.COMMENT,
                ticket_number=ticket_number,
                comment=content,
                is_internal="internal" in head.lower(),
            )

        raise ParseError(
            ParseErrorKind.UNRECOGNIZED_COMMAND,
            "I didn't recognize that ticket command. I can assign, unassign, change status or priority, "
            "or add a comment."
        )

    def _extract_enum(self, text: str, patterns: Tuple, enum_cls: Type[Enum], label: str, valid: str):
        for pattern, strict in patterns:
            match = pattern.search(text)
            if not match:
                continue
            value = self._match_enum(enum_cls, match.group(1), match.group(2))
            if value is None:
                if not strict:
                    continue
                raise ParseError(
                    ParseErrorKind.INVALID_ENUM_VALUE,
                    f"Invalid {label} '{match.group(1).lower()}'. Valid values are: {valid}."
                )
            return value
        raise ParseError(ParseErrorKind.MISSING_VALUE, f"No {label} specified. Valid values are: {valid}.")

    @staticmethod
    def _match_enum(enum_cls: Type[Enum], first: str, second: Optional[str]):
        candidates = []
        if second:
            candidates.append(f"{first}_{second}".lower())
        candidates.append(first.lower())
        for candidate in candidates:
            try:
                return enum_cls(candidate)
            except ValueError:
                continue
        return None
