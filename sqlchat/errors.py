from __future__ import annotations

import enum
from typing import Optional


class ChatError(Exception):
    """Base for failures scoped to a single chat request."""

    public_message = "Request failed"
    http_status = 500

    def __init__(self, detail: str = "", public_message: Optional[str] = None):
        super().__init__(detail or public_message or self.public_message)
        self.detail = detail
        if public_message is not None:
            self.public_message = public_message


class ModelValidationError(ChatError):
    public_message = "The language model returned an invalid response"
    http_status = 502


class ParseError(ModelValidationError):
    pass


class SchemaMismatchError(ModelValidationError):
    pass


class ModelOutputInvalid(ChatError):
    public_message = "The language model returned an invalid response"
    http_status = 502


class GatewayError(ChatError):
    public_message = "The language model request failed"
    http_status = 502


class SchemaFetchError(ChatError):
    public_message = "Could not load the database schema"
    http_status = 503


class QueryError(ChatError):
    public_message = "Query execution failed"
    http_status = 502


class QueryTimeout(QueryError):
    public_message = "Query timed out"
    http_status = 504


class RateLimitExceeded(ChatError):
    public_message = "Rate limit exceeded"
    http_status = 429


class RejectionReason(str, enum.Enum):
    EMPTY = "Empty"
    MULTI_STATEMENT = "MultiStatement"
    NOT_READ_ONLY = "NotReadOnly"
    BLOCKED_KEYWORD = "BlockedKeyword"
    BLOCKED_FUNCTION = "BlockedFunction"
    SELECT_STAR = "SelectStar"
    SENSITIVE_FIELD = "SensitiveField"
    UNPARSABLE = "Unparsable"


class SqlRejected(ChatError):
    """Raised by the SQL guard. The message is shown to the caller as-is."""

    http_status = 422

    def __init__(self, reason: RejectionReason, detail: str, token: Optional[str] = None):
        message = f"SQL rejected ({reason.value}): {detail}"
        super().__init__(message, public_message=message)
        self.reason = reason
        self.token = token


__all__ = [
    "ChatError",
    "ModelValidationError",
    "ParseError",
    "SchemaMismatchError",
    "ModelOutputInvalid",
    "GatewayError",
    "SchemaFetchError",
    "QueryError",
    "QueryTimeout",
    "RateLimitExceeded",
    "RejectionReason",
    "SqlRejected",
]
