# vulnmap/crawler/spider.py
"""Asynchronous crawler that builds the site graph"""

import asyncio
import logging
import time
from collections import Counter
from typing import Dict, Optional, Set

import aiohttp

from ..async_utils import Frontier, RetryPolicy
from ..errors import UnreachableTarget
from .fetcher import Document, FetchError, Fetcher, HTTPError, RETRYABLE_ERRORS
from .parser import parse
from .scope import ScopeGuard, normalize
from .site_graph import PageNode, PageStatus, SiteGraph, StopReason


logger = logging.getLogger(__name__)


class AsyncWebCrawler:
    """
    Breadth-first crawler over a depth-prioritized frontier.

    A fixed pool of worker tasks pulls URLs from the frontier. Each URL is
    claimed under the graph lock before it is fetched, so no URL is fetched
    twice, and each page node is inserted together with the enqueueing of
    its links in one step under the same lock.

    A URL at depth d is held until every URL at a smaller depth has been
    processed. The first discovery of a URL therefore always comes from
    the shallowest page linking to it, whatever order fetches complete in.
    """

    def __init__(
        self,
        base_url: str,
        max_depth: int = 3,
        max_pages: int = 50,
        max_concurrency: int = 5,
        request_timeout: float = 10.0,
        time_budget: Optional[float] = 120.0,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        fetcher: Optional[Fetcher] = None,
        http_options: Optional[Dict] = None
    ):
        self.base_url = normalize(base_url)
        self.max_depth = max_depth
        self.max_pages = max_pages
        self.max_concurrency = max_concurrency
        self.request_timeout = request_timeout
        self.time_budget = time_budget
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.fetcher = fetcher
        self.http_options = http_options or {}

        self.scope = ScopeGuard(self.base_url)
        self.graph = SiteGraph(self.base_url)

        self._frontier: Optional[Frontier] = None
        self._seen: Set[str] = set()
        self._claimed: Set[str] = set()
        self._lock = asyncio.Lock()
        self._pages_claimed = 0
        self._page_limit_hit = False
        # URLs queued but not yet processed, per depth
        self._open_by_depth: Counter = Counter()
        self._level_done: Dict[int, asyncio.Event] = {}

        self.stats = {
            "fetches": 0,
            "retries": 0,
            "pages": 0,
            "unreachable": 0,
            "excluded": 0,
            "elapsed": 0.0,
            "stop_reason": None,
        }

    async def crawl(self, cancel_event: Optional[asyncio.Event] = None) -> SiteGraph:
        """
        Crawl from the root and return the frozen site graph.

        Raises:
            UnreachableTarget: if the root page cannot be fetched
        """
        if self.fetcher is not None:
            return await self._crawl(self.fetcher, cancel_event)

        connector = aiohttp.TCPConnector(limit=self.max_concurrency * 2)
        async with aiohttp.ClientSession(connector=connector) as session:
            fetcher = Fetcher(
                session,
                max_concurrency=self.max_concurrency,
                default_timeout=self.request_timeout,
                **self.http_options
            )
            return await self._crawl(fetcher, cancel_event)

    async def _crawl(self, fetcher: Fetcher, cancel_event: Optional[asyncio.Event]) -> SiteGraph:
        start = time.monotonic()
        stop_reason = StopReason.EXHAUSTED

        try:
            try:
                root_document = await asyncio.wait_for(self._fetch_root(fetcher), timeout=self.time_budget)
            except asyncio.TimeoutError as e:
                logger.warning("Root %s did not respond within the %ss crawl budget", self.base_url, self.time_budget)
                raise UnreachableTarget(self.base_url, "crawl time budget exhausted") from e
            self._frontier = Frontier()
            self._insert_page(root_document, 0)

            remaining = None
            if self.time_budget is not None:
                remaining = max(0.0, self.time_budget - (time.monotonic() - start))
            stop_reason = await self._run_workers(fetcher, cancel_event, remaining)
        except UnreachableTarget:
            stop_reason = StopReason.ROOT_UNREACHABLE
            raise
        except asyncio.CancelledError:
            stop_reason = StopReason.CANCELLED
            raise
        finally:
            self.stats["elapsed"] = time.monotonic() - start
            self.stats["stop_reason"] = stop_reason.value
            self.graph.freeze(stop_reason)
            logger.info(
                "Crawl finished: %d pages, %d fetches, stop reason %s",
                len(self.graph), self.stats["fetches"], stop_reason.value
            )

        return self.graph

    async def _fetch_root(self, fetcher: Fetcher) -> Document:
        self._claimed.add(self.base_url)
        self._seen.add(self.base_url)
        self._pages_claimed = 1
        try:
            document = await self._fetch_with_retry(fetcher, self.base_url)
        except FetchError as e:
            logger.warning("Root %s unreachable: %s", self.base_url, e)
            raise UnreachableTarget(self.base_url, str(e)) from e

        if document.url != self.base_url:
            # The resolved root defines the crawl scope
            logger.info("Root redirected to %s", document.url)
            self.graph.record_redirect(self.base_url, document.url)
            self.scope = self.scope.rebase(document.url)
            self.graph.rebase(document.url)
            self._claimed.add(document.url)
            self._seen.add(document.url)
        return document

    async def _run_workers(
        self,
        fetcher: Fetcher,
        cancel_event: Optional[asyncio.Event],
        time_budget: Optional[float]
    ) -> StopReason:
        workers = [
            asyncio.create_task(self._worker(fetcher, i))
            for i in range(self.max_concurrency)
        ]
        waiters = [asyncio.create_task(self._frontier.drained())]
        if cancel_event is not None:
            waiters.append(asyncio.create_task(cancel_event.wait()))

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=time_budget, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            # In-flight fetches are abandoned, not awaited
            for task in workers + waiters:
                task.cancel()
            await asyncio.gather(*workers, *waiters, return_exceptions=True)

        if not done:
            logger.warning("Crawl time budget of %ss exhausted", self.time_budget)
            return StopReason.TIME_BUDGET
        if waiters[0] not in done:
            logger.warning("Crawl cancelled")
            return StopReason.CANCELLED
        if self._page_limit_hit:
            return StopReason.MAX_PAGES
        return StopReason.EXHAUSTED

    async def _worker(self, fetcher: Fetcher, worker_id: int):
        """Worker coroutine that processes URLs from the frontier"""
        while True:
            depth, url = await self._frontier.pop()
            try:
                await self._wait_for_shallower(depth)
                await self._process(fetcher, url, depth)
            except Exception as e:
                logger.exception("Worker %d failed on %s: %s", worker_id, url, e)
            finally:
                self._finish(depth)
                self._frontier.task_done()

    async def _process(self, fetcher: Fetcher, url: str, depth: int):
        if depth > self.max_depth:
            await self._exclude(url, PageStatus.EXCLUDED_BY_DEPTH)
            return
        if not self.scope.in_scope(url):
            await self._exclude(url, PageStatus.EXCLUDED_BY_SCOPE)
            return

        async with self._lock:
            if url in self._claimed:
                return
            if self._pages_claimed >= self.max_pages:
                self._page_limit_hit = True
                return
            self._claimed.add(url)
            self._pages_claimed += 1

        logger.debug("[Crawl] Visiting: %s (depth %d)", url, depth)

        try:
            document = await self._fetch_with_retry(fetcher, url)
        except FetchError as e:
            await self._insert_unreachable(url, depth, e)
            return

        if document.url != url:
            if not self.scope.in_scope(document.url):
                async with self._lock:
                    self.graph.record_redirect(url, document.url)
                    self.graph.record_excluded(url, PageStatus.EXCLUDED_BY_SCOPE)
                    self.stats["excluded"] += 1
                return
            async with self._lock:
                self.graph.record_redirect(url, document.url)
                if document.url in self._claimed:
                    return
                self._claimed.add(document.url)
                self._seen.add(document.url)

        async with self._lock:
            self._insert_page(document, depth)

    async def _fetch_with_retry(self, fetcher: Fetcher, url: str) -> Document:
        def on_retry(attempt: int, error: BaseException):
            self.stats["retries"] += 1
            logger.debug("Retry %d for %s after %s", attempt, url, error)

        policy = RetryPolicy(retries=self.max_retries, delay=self.retry_delay, retry_on=RETRYABLE_ERRORS)

        async def attempt() -> Document:
            self.stats["fetches"] += 1
            return await fetcher.fetch(url, timeout=self.request_timeout)

        return await policy.run(attempt, on_retry)

    def _insert_page(self, document: Document, depth: int):
        """Create the page node and enqueue its new links; caller holds the lock"""
        parsed = parse(document)
        node = PageNode(
            url=document.url,
            depth=depth,
            status=PageStatus.OK,
            http_status=document.status,
            content_type=document.content_type
        )
        for link in parsed.links:
            node.add_link(link)
        for form in parsed.forms:
            node.add_form(form)

        self.graph.add_node(node)
        self.stats["pages"] += 1

        for link in node.links:
            if link in self._seen or not self.scope.in_scope(link):
                continue
            self._seen.add(link)
            self._enqueue(link, depth + 1)

    def _enqueue(self, url: str, depth: int):
        self._open_by_depth[depth] += 1
        self._level(depth).clear()
        self._frontier.push(url, depth)

    def _finish(self, depth: int):
        self._open_by_depth[depth] -= 1
        if self._open_by_depth[depth] == 0:
            self._level(depth).set()

    def _level(self, depth: int) -> asyncio.Event:
        """Event that is set while no URL at this depth is queued or in progress"""
        event = self._level_done.get(depth)
        if event is None:
            event = self._level_done[depth] = asyncio.Event()
            event.set()
        return event

    async def _wait_for_shallower(self, depth: int):
        for shallower in range(1, depth):
            await self._level(shallower).wait()

    async def _insert_unreachable(self, url: str, depth: int, error: FetchError):
        logger.debug("Unreachable %s: %s", url, error)
        node = PageNode(
            url=url,
            depth=depth,
            status=PageStatus.UNREACHABLE,
            http_status=error.status if isinstance(error, HTTPError) else None,
            error=str(error)
        )
        async with self._lock:
            self.graph.add_node(node)
            self.stats["unreachable"] += 1

    async def _exclude(self, url: str, status: PageStatus):
        async with self._lock:
            if url in self.graph.excluded:
                return
            self.graph.record_excluded(url, status)
            self.stats["excluded"] += 1
