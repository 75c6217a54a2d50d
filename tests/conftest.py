# tests/conftest.py
import asyncio
from collections import Counter
from typing import Iterable, Optional

import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from test_app.vulnerable import create_app
from vulnmap.config.scan_profiles import build_custom_config
from vulnmap.crawler.fetcher import Document, Fetcher, HTTPError
from vulnmap.crawler.site_graph import FormDescriptor, InputDescriptor, PageNode, SiteGraph, StopReason


class CountingFetcher(Fetcher):
    """Fetcher that records how often each URL was requested"""

    def __init__(self, session, **kwargs):
        super().__init__(session, **kwargs)
        self.counts = Counter()

    async def fetch(self, url, timeout=None):
        self.counts[url] += 1
        return await super().fetch(url, timeout=timeout)


class StubFetcher:
    """
    In-memory fetcher for probe module and crawler tests.

    ``handler(url, params)`` returns the response body, a
    ``(status, body)`` tuple, or a ready ``Document`` (used for
    redirects). ``delays`` holds per-URL response delays in seconds.
    Every call is recorded in ``calls``.
    """

    def __init__(self, handler, delays: Optional[dict] = None):
        self.handler = handler
        self.delays = delays or {}
        self.calls = []

    async def request(self, method, url, params=None, timeout=None, raise_for_status=True):
        params = dict(params or {})
        self.calls.append((method, url, params))
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        result = self.handler(url, params)
        if isinstance(result, Document):
            return result
        status, body = result if isinstance(result, tuple) else (200, result)
        if raise_for_status and status >= 400:
            raise HTTPError(url, status)
        return Document(requested_url=url, url=url, status=status, content_type="text/html", text=body)

    async def fetch(self, url, timeout=None):
        return await self.request("GET", url, timeout=timeout)


def fast_config(**overrides):
    """Standard profile without rate limiting or retry back-off"""
    overrides.setdefault("requests_per_second", None)
    overrides.setdefault("retry_delay", 0)
    return build_custom_config("standard", **overrides)


def form(action: str, method: str = "get", inputs: Iterable = ()) -> FormDescriptor:
    """Form descriptor from (name, type, value) tuples"""
    return FormDescriptor(
        action=action,
        method=method,
        inputs=tuple(InputDescriptor(name=name, type=type_, value=value) for name, type_, value in inputs)
    )


def build_graph(root: str, pages: dict, stop_reason: Optional[StopReason] = StopReason.EXHAUSTED) -> SiteGraph:
    """Frozen site graph from {url: [forms]}; the first page is the root"""
    graph = SiteGraph(root)
    for depth, (url, forms) in enumerate(pages.items()):
        node = PageNode(url=url, depth=min(depth, 1), http_status=200, content_type="text/html")
        for descriptor in forms:
            node.add_form(descriptor)
        graph.add_node(node)
    graph.freeze(stop_reason)
    return graph


@pytest_asyncio.fixture
async def vulnerable_server():
    """The fixture site served on an ephemeral local port"""
    server = TestServer(create_app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def base_url(vulnerable_server) -> str:
    return str(vulnerable_server.make_url("/"))


@pytest_asyncio.fixture
async def http_session():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
def counting_fetcher(http_session) -> CountingFetcher:
    return CountingFetcher(http_session, max_concurrency=5, default_timeout=5)
