# vulnmap/crawler/__init__.py
"""Site discovery: scope guard, fetcher, page parser, site graph and crawler"""

from .scope import ScopeGuard, normalize, resolve, in_scope, origin_url, strip_query
from .fetcher import (
    Document,
    Fetcher,
    FetchError,
    FetchTimeout,
    FetchConnectionError,
    HTTPError,
    TLSError,
    TooManyRedirects,
)
from .parser import ParseResult, parse
from .site_graph import (
    FormDescriptor,
    InputDescriptor,
    PageNode,
    PageStatus,
    SiteGraph,
    StopReason,
)
from .spider import AsyncWebCrawler

__all__ = [
    'ScopeGuard',
    'normalize',
    'resolve',
    'in_scope',
    'origin_url',
    'strip_query',
    'Document',
    'Fetcher',
    'FetchError',
    'FetchTimeout',
    'FetchConnectionError',
    'HTTPError',
    'TLSError',
    'TooManyRedirects',
    'ParseResult',
    'parse',
    'FormDescriptor',
    'InputDescriptor',
    'PageNode',
    'PageStatus',
    'SiteGraph',
    'StopReason',
    'AsyncWebCrawler',
]
