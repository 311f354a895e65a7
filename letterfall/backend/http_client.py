"""HTTP clients for title feeds and the poller that feeds the text queue."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import httpx

from ..config import TextSourceSettings
from ..text_queue import TextQueue

logger = logging.getLogger(__name__)


class TitlesHttpClient:
    """Thin wrapper around a titles endpoint (``{"titles": [...]}``)."""

    name = "titles"

    def __init__(
        self,
        settings: TextSourceSettings,
        *,
        url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.url = url or settings.url
        self._client = httpx.AsyncClient(
            timeout=settings.timeout_s,
            headers=self._headers(),
            transport=transport,
        )

    def _headers(self) -> dict:
        headers = {"Cache-Control": "no-cache", "User-Agent": self.settings.user_agent}
        if self.settings.api_key:
            headers["X-API-Key"] = self.settings.api_key
        return headers

    def _extract(self, data: Any) -> Optional[list]:
        titles = data.get("titles") if isinstance(data, dict) else None
        return titles if isinstance(titles, list) else None

    async def fetch_titles(self) -> List[str]:
        """Current titles from the feed; any failure yields an empty list."""
        try:
            response = await self._client.get(self.url)
            response.raise_for_status()
            try:
                data = response.json()
            except ValueError:
                logger.warning("%s.fetch: response was not JSON", self.name)
                return []
            titles = self._extract(data)
            if titles is None:
                logger.warning("%s.fetch: response missing titles list", self.name)
                return []
            return [t for t in titles if isinstance(t, str) and t]
        except httpx.TimeoutException:
            logger.error("%s.fetch: request timeout", self.name)
            return []
        except httpx.NetworkError as e:
            logger.error("%s.fetch: network error - %s", self.name, e)
            return []
        except httpx.HTTPStatusError as e:
            logger.error("%s.fetch: HTTP %d - %s", self.name, e.response.status_code, e.response.text[:200])
            return []
        except Exception as e:
            logger.exception("%s.fetch: unexpected error - %s", self.name, e)
            return []

    async def aclose(self) -> None:
        try:
            await self._client.aclose()
        except Exception as e:
            logger.warning("Error closing HTTP client: %s", e)


class RedditTitlesClient(TitlesHttpClient):
    """Post titles from a Reddit listing (``data.children[].data.title``); backs the /titles route."""

    name = "reddit"

    def __init__(
        self,
        settings: TextSourceSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(settings, url=settings.reddit_url, transport=transport)

    def _headers(self) -> dict:
        # the upstream key is for the titles feed, never for Reddit
        return {"Cache-Control": "no-cache", "User-Agent": self.settings.user_agent}

    def _extract(self, data: Any) -> Optional[list]:
        listing = data.get("data") if isinstance(data, dict) else None
        children = listing.get("children") if isinstance(listing, dict) else None
        if not isinstance(children, list):
            return None
        titles = []
        for child in children:
            post = child.get("data") if isinstance(child, dict) else None
            if isinstance(post, dict):
                titles.append(post.get("title"))
        return titles


class TitlesPoller:
    """Polls the titles feed on its own cadence and offers results to the queue."""

    def __init__(self, client: TitlesHttpClient, queue: TextQueue, *, interval_s: float) -> None:
        self.client = client
        self.queue = queue
        self.interval_s = interval_s
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        if self._task:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="titles-poller")

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def poll_once(self) -> int:
        titles = await self.client.fetch_titles()
        return self.queue.offer(titles)

    async def _run_loop(self) -> None:
        logger.info("Titles poller active (url=%s, every %.1fs)", self.client.url, self.interval_s)
        try:
            while not self._stop_event.is_set():
                await self.poll_once()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_s)
                except asyncio.TimeoutError:
                    pass
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Titles poller error: %s", exc)
            raise
        finally:
            self._stop_event.clear()


__all__ = ["RedditTitlesClient", "TitlesHttpClient", "TitlesPoller"]
