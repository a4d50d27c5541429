"""
Error classification for venue requests.

Venue clients do not retry: every failure is classified once, logged, and
turned into an empty result (or, for the instruments loader, re-raised so the
instruments cache can fall back to its last-known-good mapping).
"""

import json
from typing import Optional

import httpx
from pydantic import ValidationError


class VenueFetchError(Exception):
    """Base exception for venue fetch errors."""
    def __init__(self, message: str, error_type: str, venue: Optional[str] = None):
        self.message = message
        self.error_type = error_type
        self.venue = venue
        super().__init__(message)


def classify_error(error: Exception, venue: Optional[str] = None) -> VenueFetchError:
    """
    Classify an exception raised while talking to a venue.

    Args:
        error: The exception to classify
        venue: Venue name for the log line

    Returns:
        VenueFetchError with an error type of timeout, connection, rate_limit,
        http_status, malformed or unknown
    """
    if isinstance(error, VenueFetchError):
        return error

    if isinstance(error, httpx.TimeoutException):
        return VenueFetchError(str(error) or "request timed out", error_type="timeout", venue=venue)

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429:
            return VenueFetchError(f"HTTP {status}", error_type="rate_limit", venue=venue)
        return VenueFetchError(f"HTTP {status}", error_type="http_status", venue=venue)

    if isinstance(error, httpx.TransportError):
        return VenueFetchError(str(error) or "transport error", error_type="connection", venue=venue)

    # Undecodable body or unexpected envelope shape
    if isinstance(error, (json.JSONDecodeError, ValidationError, KeyError, TypeError)):
        return VenueFetchError(str(error), error_type="malformed", venue=venue)

    error_str = str(error).lower()
    if any(term in error_str for term in ["rate limit", "too many requests"]):
        return VenueFetchError(str(error), error_type="rate_limit", venue=venue)

    return VenueFetchError(str(error), error_type="unknown", venue=venue)
