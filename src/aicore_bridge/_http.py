"""Small HTTP-related constants shared across aicore-bridge.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

# Statuses that are worth retrying outside the 5xx range.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429})


def is_retryable_status(status_code: int) -> bool:
    """Return whether a caller may retry a request that failed with *status_code*."""
    return status_code in RETRYABLE_STATUS_CODES or 500 <= status_code <= 599
