"""
Error kinds raised by the duplicate-merge engine and the enrichment queue.

Callers map them onto user-visible behaviour: InvalidRequestError → 4xx with
the message, NotFoundError → 404, anything else → 5xx with a generic message
(detail logged, not exposed).
"""
from typing import Iterable, Optional


class IbdbError(Exception):
    """Base class for all domain errors."""


class InvalidRequestError(IbdbError):
    """Malformed arguments. Always raised before any mutation."""


class NotFoundError(IbdbError):
    """A referenced author / book / edition / queue entry does not exist."""

    def __init__(self, message: str, missing_ids: Optional[Iterable] = None):
        self.missing_ids = [str(i) for i in (missing_ids or [])]
        super().__init__(message)


class TransactionFailure(IbdbError):
    """The store aborted a unit of work (constraint violation, timeout, …).

    The transaction has been rolled back; the original driver error is chained
    as ``__cause__``.
    """


class ExternalServiceError(IbdbError):
    """The external catalog API returned a non-2xx status or a malformed payload."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ScanInProgressError(IbdbError):
    """Another duplicate scan currently holds the scan lock."""
