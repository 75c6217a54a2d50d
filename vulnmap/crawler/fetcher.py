# vulnmap/crawler/fetcher.py
"""Bounded-concurrency HTTP fetcher"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import aiohttp

from ..async_utils import RateLimiter
from .scope import normalize


logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5


class FetchError(Exception):
    """Base class for fetch failures"""

    def __init__(self, url: str, message: str = ""):
        self.url = url
        super().__init__(message or url)


class FetchTimeout(FetchError):
    pass


class FetchConnectionError(FetchError):
    pass


class TLSError(FetchError):
    pass


class TooManyRedirects(FetchError):
    pass


class HTTPError(FetchError):
    """A response with a 4xx/5xx status"""

    def __init__(self, url: str, status: int):
        self.status = status
        super().__init__(url, f"HTTP {status} for {url}")


# Failures worth another attempt; everything else is terminal
RETRYABLE_ERRORS = (FetchTimeout, FetchConnectionError)


@dataclass
class Document:
    """A fetched HTTP response body and its metadata"""
    requested_url: str
    url: str
    status: int
    content_type: str = ""
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    redirects: List[str] = field(default_factory=list)

    @property
    def is_html(self) -> bool:
        content_type = self.content_type.lower()
        return not content_type or "html" in content_type

    @property
    def redirected(self) -> bool:
        return bool(self.redirects)


class Fetcher:
    """
    Issues HTTP requests through a shared aiohttp session.

    Every request goes through one semaphore (the concurrency bound) and an
    optional rate limiter. Failures are raised as FetchError subclasses;
    the fetcher never retries on its own.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        max_concurrency: int = 5,
        default_timeout: float = 10.0,
        requests_per_second: Optional[float] = None,
        verify_tls: bool = True,
        max_redirects: int = MAX_REDIRECTS
    ):
        self.session = session
        self.max_concurrency = max_concurrency
        self.default_timeout = default_timeout
        self.verify_tls = verify_tls
        self.max_redirects = max_redirects
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._rate_limiter = RateLimiter(requests_per_second) if requests_per_second else None

        self.stats = {
            "requests": 0,
            "failures": 0,
        }

    async def fetch(self, url: str, timeout: Optional[float] = None) -> Document:
        """GET a page, raising HTTPError on 4xx/5xx responses"""
        return await self.request("GET", url, timeout=timeout)

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        raise_for_status: bool = True
    ) -> Document:
        """
        Issue a request and return the response as a Document.

        Args:
            method: HTTP method
            url: Absolute URL
            params: Query parameters merged into the URL
            timeout: Total timeout for this request in seconds
            raise_for_status: Raise HTTPError for 4xx/5xx responses

        Raises:
            FetchError: on timeout, connection, TLS, redirect or status failures
        """
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.default_timeout)

        async with self._semaphore:
            if self._rate_limiter:
                await self._rate_limiter.acquire()

            self.stats["requests"] += 1
            logger.debug("%s %s %s", method, url, params or "")

            try:
                async with self.session.request(
                    method, url,
                    params=params,
                    allow_redirects=True,
                    max_redirects=self.max_redirects,
                    timeout=client_timeout,
                    ssl=self.verify_tls
                ) as response:
                    text = await response.text(errors="replace")
                    document = Document(
                        requested_url=url,
                        url=self._final_url(response, url),
                        status=response.status,
                        content_type=response.headers.get("Content-Type", ""),
                        text=text,
                        headers=dict(response.headers),
                        redirects=[str(r.url) for r in response.history]
                    )
            except asyncio.TimeoutError as e:
                self.stats["failures"] += 1
                raise FetchTimeout(url, f"Timeout fetching {url}") from e
            except aiohttp.TooManyRedirects as e:
                self.stats["failures"] += 1
                raise TooManyRedirects(url, f"More than {self.max_redirects} redirects from {url}") from e
            except (aiohttp.ClientSSLError, aiohttp.ServerFingerprintMismatch) as e:
                self.stats["failures"] += 1
                raise TLSError(url, f"TLS failure for {url}: {e}") from e
            except aiohttp.ClientError as e:
                self.stats["failures"] += 1
                raise FetchConnectionError(url, f"Connection failure for {url}: {e}") from e

        if raise_for_status and document.status >= 400:
            self.stats["failures"] += 1
            raise HTTPError(url, document.status)

        return document

    @staticmethod
    def _final_url(response: aiohttp.ClientResponse, fallback: str) -> str:
        try:
            return normalize(str(response.url))
        except ValueError:
            return fallback
