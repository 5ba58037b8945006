"""Fuzzy user search: HTTP client plus a cancelable debounce around it."""

import asyncio
from collections.abc import Callable
from typing import Any, List, Optional

import httpx
from loguru import logger

from .exceptions import PayloadError
from .models import SearchUser

SEARCH_PATH = "/user/search"


def _parse_results(body: Any) -> List[SearchUser]:
    # The API wraps payloads as {"data": [...]} on some deployments.
    if isinstance(body, dict) and "data" in body:
        body = body["data"]
    if body is None:
        return []
    if not isinstance(body, list):
        raise PayloadError("search result", f"expected a list, got {type(body).__name__}")
    return [SearchUser.from_dict(item) for item in body]


class UserSearchClient:
    """Stateless request/response wrapper around the search endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
        )

    async def search(self, query: str) -> List[SearchUser]:
        response = await self._client.get(SEARCH_PATH, params={"email": query})
        response.raise_for_status()
        return _parse_results(response.json())

    async def aclose(self) -> None:
        await self._client.aclose()


class DebouncedUserSearch:
    """
    Debounces keystrokes into search calls.

    A newer query cancels the pending one (sleeping or in flight), so a
    slow stale response can never overwrite a fresher result. Failures
    degrade to an empty result list.
    """

    def __init__(
        self,
        client: UserSearchClient,
        delay: float = 0.5,
        on_results: Optional[Callable[[List[SearchUser]], None]] = None,
    ):
        self._client = client
        self.delay = delay
        self.on_results = on_results
        self._task: Optional[asyncio.Task] = None
        self.query = ""
        self.results: List[SearchUser] = []
        self.is_searching = False

    def submit(self, query: str) -> None:
        """Record a keystroke. Must be called from the running event loop."""
        self.query = query
        self.cancel()
        if not query.strip():
            self._publish([])
            return
        self._task = asyncio.create_task(self._run(query))

    def clear(self) -> None:
        """Drop the query and any results."""
        self.query = ""
        self.cancel()
        self._publish([])

    def cancel(self) -> None:
        """Cancel the pending search, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.is_searching = False

    async def aclose(self) -> None:
        """Cancel any pending search and release the HTTP client."""
        self.cancel()
        await self._client.aclose()

    async def wait(self) -> None:
        """Wait for the pending search to finish (tests, shutdown)."""
        task = self._task
        if task is None:
            return
        await asyncio.wait([task])

    async def _run(self, query: str) -> None:
        await asyncio.sleep(self.delay)
        self.is_searching = True
        try:
            results = await self._client.search(query)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"User search failed for {query!r}: {e}")
            results = []
        finally:
            self.is_searching = False
        self._publish(results)

    def _publish(self, results: List[SearchUser]) -> None:
        self.results = results
        if self.on_results is None:
            return
        try:
            self.on_results(results)
        except Exception as e:
            logger.warning(f"Search results callback failed: {e}")
