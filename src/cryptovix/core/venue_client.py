"""
Venue Client Base

Shared HTTP plumbing for venue clients: one httpx.AsyncClient, per-request
timeout, status checking, JSON decoding and envelope validation. Errors are
classified and raised as VenueFetchError; the public fetch methods of the
concrete clients turn those into empty results.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from cryptovix.utils.venue_errors import VenueFetchError, classify_error


class VenueClient(ABC):
    """
    Best-effort HTTP client for one venue.

    Attributes:
        venue: Venue name used in logs and errors
        base_url: API base URL
        http: Shared async HTTP client
        timeout: Per-request timeout in seconds
    """

    venue: str = "venue"

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        timeout: float = 10.0,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _request_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a venue endpoint and decode the JSON body.

        Raises:
            VenueFetchError: On transport, HTTP status or decoding failure
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = await self.http.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except Exception as e:
            classified = classify_error(e, venue=self.venue)
            logger.warning(
                f"{self.venue} request {path} failed: {classified.error_type} ({classified.message})"
            )
            raise classified from e

    @abstractmethod
    def _unwrap(self, payload: Any) -> Any:
        """Validate the venue envelope and return its result body."""

    async def _get_result(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET an endpoint and return the validated envelope result."""
        payload = await self._request_json(path, params)
        try:
            return self._unwrap(payload)
        except VenueFetchError:
            raise
        except Exception as e:
            classified = classify_error(e, venue=self.venue)
            logger.warning(f"{self.venue} response from {path} rejected: {classified.message}")
            raise classified from e
