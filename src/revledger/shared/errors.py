# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Exception hierarchy for the revenue pipeline.

- TransientError: network or database hiccup, retried with backoff
- RetryExhaustedError: backoff ceiling reached, fatal for that call
- MalformedEventError: bad input line, always skipped locally
"""

from typing import Optional


class RevledgerError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.message = message
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message} | Caused by: {self.cause}"
        return self.message


class TransientError(RevledgerError):
    """Failure that is expected to clear up on retry."""


class DeliveryError(TransientError):
    """Ingest point could not be reached or answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.status_code = status_code


class UnauthorizedError(DeliveryError):
    """Ingest point rejected the shared-secret credential (HTTP 401)."""


class LedgerError(TransientError):
    """Ledger transaction failed and was rolled back."""


class MalformedEventError(RevledgerError):
    """A line could not be parsed into an Event."""


class RetryExhaustedError(RevledgerError):
    """Operation still failing after the backoff ceiling."""

    def __init__(self, message: str, attempts: int,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.attempts = attempts


class DeliveryFailedError(RetryExhaustedError):
    """An event could not be delivered before the retry ceiling."""
