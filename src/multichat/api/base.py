"""Shared HTTP client plumbing."""

import asyncio
import json
import logging

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


async def safe_json(resp: aiohttp.ClientResponse) -> dict | list | None:
    """Parse JSON from a response, returning None on error.

    Handles HTML error pages (ContentTypeError), malformed JSON and empty
    bodies.
    """
    try:
        return await resp.json()
    except (aiohttp.ContentTypeError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to parse JSON response: {e}")
        return None


class BaseApiClient:
    """Lazily-created aiohttp session shared by one client's requests."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._session: aiohttp.ClientSession | None = None
        self._timeout = timeout

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            connector = aiohttp.TCPConnector(limit=50)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            try:
                await self._session.close()
                # Let the connector finish closing to avoid "Unclosed connector"
                await asyncio.sleep(0.1)
            finally:
                self._session = None
