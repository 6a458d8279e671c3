# src/papershelf/domain/errors.py
"""
Error taxonomy shared by the store, the ingestion pipeline and the CLI.

Every error carries a short ``kind`` used by the command surface when
reporting failures (``error[not_found]: paper 3 not found``).
"""

from __future__ import annotations

from typing import Optional


class PapershelfError(Exception):
    """Base class for all errors raised by papershelf."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidInput(PapershelfError, ValueError):
    """A required identifying field is missing or an argument is malformed."""

    kind = "invalid_input"


class NotFound(PapershelfError, LookupError):
    """The referenced paper (or repository) does not exist or is soft-deleted."""

    kind = "not_found"


class Conflict(PapershelfError):
    """The destination already exists."""

    kind = "conflict"


class StoreError(PapershelfError):
    """Underlying database failure, including constraint violations."""

    kind = "store_error"


class TransportError(PapershelfError):
    """Fetching a remote document failed."""

    kind = "transport_error"

    def __init__(self, message: str, *, url: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
