"""
Error types for the ChitChat server.

Every handler failure is one of:
- ValidationError: missing or malformed input (400)
- ConflictError: duplicate action or self-targeting (409, sometimes 400)
- NotFoundError: referenced entity absent (404)
- RateLimitError: comment cooldown (429)
- ServerError: store, cache, media or transport failure (500)

Invariants:
    - Validation and conflict errors are raised before any mutation
    - Server errors may follow a partial mutation and are never rolled back
    - Responses render as {"message": ..., "error": ...}
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


class ChitChatError(Exception):
    """Base exception for all handler errors.

    Attributes:
        message: Human-readable message for the client
        status_code: HTTP status to respond with
        error: Underlying error text, if any
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error = error
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"message": self.message, "error": self.error}


class ValidationError(ChitChatError):
    status_code = 400


class ConflictError(ChitChatError):
    status_code = 409


class NotFoundError(ChitChatError):
    status_code = 404


class RateLimitError(ChitChatError):
    status_code = 429


class ServerError(ChitChatError):
    status_code = 500


@contextmanager
def server_errors(message: str) -> Iterator[None]:
    """Convert unexpected failures inside the block into a ServerError.

    Domain errors raised inside the block pass through untouched. Anything
    else is logged with its traceback and re-raised as a 500 carrying the
    underlying error text.
    """
    try:
        yield
    except ChitChatError:
        raise
    except Exception as e:
        logger.exception(message)
        raise ServerError(message, error=str(e)) from e
