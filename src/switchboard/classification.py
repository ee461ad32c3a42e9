"""Retryable-vs-fatal classification of provider failures.

Vendors report transient failures with free-text messages, so the rules
are regular expressions evaluated identically for every provider. A
:class:`~switchboard.errors.TransportError` that carries an HTTP status is
checked against :data:`RETRYABLE_STATUS_CODES` first.
"""

from __future__ import annotations

import re

from switchboard.errors import TransportError

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503})

RETRYABLE_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"rate.?limit", re.IGNORECASE),
    re.compile(r"too.?many.?requests", re.IGNORECASE),
    re.compile(r"429"),
    re.compile(r"timeout", re.IGNORECASE),
    re.compile(r"timed?.?out", re.IGNORECASE),
    re.compile(r"ETIMEDOUT"),
    re.compile(r"service.?unavailable", re.IGNORECASE),
    re.compile(r"503"),
    re.compile(r"502"),
    re.compile(r"bad.?gateway", re.IGNORECASE),
    re.compile(r"network.?error", re.IGNORECASE),
    re.compile(r"ECONNREFUSED"),
    re.compile(r"ECONNRESET"),
    re.compile(r"ENOTFOUND"),
    re.compile(r"connection.?(refused|reset|error)", re.IGNORECASE),
    re.compile(r"name or service not known|temporary failure in name resolution", re.IGNORECASE),
    re.compile(r"fetch.?failed", re.IGNORECASE),
    re.compile(r"quota.?exceeded", re.IGNORECASE),
    re.compile(r"insufficient.?quota", re.IGNORECASE),
)


def is_retryable_message(text: str) -> bool:
    """Return True if ``text`` matches any retryable pattern."""
    return any(pattern.search(text) for pattern in RETRYABLE_ERROR_PATTERNS)


def error_text(error: BaseException | str) -> str:
    if isinstance(error, str):
        return error
    return f"{type(error).__name__}: {error}"


def is_retryable_error(error: BaseException | str) -> bool:
    """Decide whether ``error`` should move execution to the next provider."""
    if isinstance(error, TransportError) and error.status_code in RETRYABLE_STATUS_CODES:
        return True
    return is_retryable_message(error_text(error))
