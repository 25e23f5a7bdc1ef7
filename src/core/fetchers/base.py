"""Abstract PageFetcher: every page-rendering backend implements this."""
import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from src.core.errors import FetchFailure

logger = structlog.get_logger()

T = TypeVar("T")

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class PageFetcher(ABC):

    def __init__(self, retries: int = 3, retry_backoff_seconds: float = 2.0):
        self.retries = max(1, retries)
        self.retry_backoff_seconds = retry_backoff_seconds

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend key: 'http', 'browser'"""
        ...

    @abstractmethod
    async def fetch_rendered(self, url: str, timeout_ms: int) -> str:
        """
        Returns the page content (HTML) once it is rendered, or as much of it
        as appeared before the settle timeout. Raises FetchFailure.
        """
        ...

    def is_transient(self, error: Exception) -> bool:
        return isinstance(error, (asyncio.TimeoutError, ConnectionError, OSError))

    async def _with_retries(self, url: str, attempt: Callable[[], Awaitable[T]]) -> T:
        """Run one navigation with a fixed back-off between transient failures."""
        last_err: Exception | None = None
        for n in range(1, self.retries + 1):
            try:
                return await attempt()
            except Exception as e:
                if not self.is_transient(e):
                    raise FetchFailure(url, str(e) or type(e).__name__, n) from e
                last_err = e
                if n < self.retries:
                    logger.warning("fetch.retry", fetcher=self.name, url=url, attempt=n,
                                   remaining=self.retries - n, error=str(e) or type(e).__name__)
                    await asyncio.sleep(self.retry_backoff_seconds)
        raise FetchFailure(url, str(last_err) or type(last_err).__name__, self.retries) from last_err
