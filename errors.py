# errors.py

from enum import Enum
from typing import Optional


class SupportAgentError(Exception):
    """Base class for every error raised by the support agent core."""


class ParseErrorKind(str, Enum):
    NO_TARGET = "no_target"
    UNRECOGNIZED_COMMAND = "unrecognized_command"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    MISSING_VALUE = "missing_value"
    EMPTY_COMMENT = "empty_comment"


class ParseError(SupportAgentError):
    """A command string could not be decoded into an ActionRequest."""

    def __init__(self, kind: ParseErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class ValidationError(SupportAgentError):
    """An ownership or transition rule rejected the requested change."""


class TransportError(SupportAgentError):
    """The storage or search backend could not be reached or returned an error."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConflictError(SupportAgentError):
    """A conditional update matched no row because another writer got there first."""


class RecordNotFound(SupportAgentError):
    def __init__(self, number: int):
        super().__init__(f"Ticket #{number} not found")
        self.number = number
