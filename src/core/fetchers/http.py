"""Plain HTTP page fetcher: for sources that render server-side."""
import asyncio

import aiohttp
import structlog
from aiolimiter import AsyncLimiter

from src.core.fetchers.base import DESKTOP_USER_AGENT, PageFetcher

logger = structlog.get_logger()


class HttpPageFetcher(PageFetcher):

    def __init__(
        self,
        retries: int = 3,
        retry_backoff_seconds: float = 2.0,
        requests_per_minute: int = 30,
        user_agent: str = DESKTOP_USER_AGENT,
    ):
        super().__init__(retries, retry_backoff_seconds)
        self._limiter = AsyncLimiter(requests_per_minute, 60)
        self._headers = {"User-Agent": user_agent, "Accept": "text/html,application/xhtml+xml"}

    @property
    def name(self) -> str:
        return "http"

    def is_transient(self, error: Exception) -> bool:
        return isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError))

    async def fetch_rendered(self, url: str, timeout_ms: int) -> str:
        timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)

        async def attempt() -> str:
            async with self._limiter:
                async with aiohttp.ClientSession(timeout=timeout, headers=self._headers) as session:
                    async with session.get(url) as resp:
                        resp.raise_for_status()
                        return await resp.text()

        content = await self._with_retries(url, attempt)
        logger.info("fetch.ok", fetcher=self.name, url=url, chars=len(content))
        return content
