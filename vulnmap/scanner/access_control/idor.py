# vulnmap/scanner/access_control/idor.py
"""Insecure Direct Object Reference (IDOR) Scanner"""

import logging
import re
from typing import Callable, Iterator, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ...crawler.fetcher import Document
from ...crawler.scope import normalize
from ...crawler.site_graph import PageNode, SiteGraph
from ..base import (
    BaseScanner,
    Finding,
    OWASPCategory,
    ProbeOptions,
    VulnType,
    pages_without_login,
)


logger = logging.getLogger(__name__)

NUMERIC_ID = re.compile(r"^\d{1,12}$")


class IDORScanner(BaseScanner):
    """Scanner for Insecure Direct Object Reference vulnerabilities"""

    name = "IDOR Scanner"
    description = "Detects sequential object identifiers served without authorization"
    vuln_type = VulnType.IDOR
    title = "Insecure Direct Object Reference"
    cwe_id = "CWE-639"
    owasp_category = OWASPCategory.A01_BROKEN_ACCESS_CONTROL

    # Patterns that indicate potential IDOR parameters
    IDOR_PATTERNS = [
        r'id', r'user', r'uid',
        r'account', r'profile', r'order',
        r'doc', r'document', r'report',
        r'invoice', r'record', r'item',
        r'^no$', r'^num$', r'number',
    ]

    ERROR_INDICATORS = [
        'not found', 'does not exist', 'no record', 'forbidden',
        'unauthorized', 'access denied', 'invalid id',
    ]

    LOGIN_PAGE = re.compile(r'<input[^>]+type\s*=\s*["\']?password', re.IGNORECASE)

    async def run(self, graph: SiteGraph, options: ProbeOptions) -> List[Finding]:
        """Scan for IDOR vulnerabilities"""
        findings = []
        tested_patterns = set()

        for node in pages_without_login(graph):
            for pattern, parameter, current, build in self._candidates(node):
                if pattern in tested_patterns:
                    continue
                tested_patterns.add(pattern)

                finding = await self._test_idor(options, node, pattern, parameter, current, build)
                if finding:
                    findings.append(finding)

        return findings

    def _candidates(self, node: PageNode) -> Iterator[Tuple[str, str, int, Callable[[int], str]]]:
        """(endpoint pattern, parameter, current id, url builder) per identifier"""
        parts = urlsplit(node.url)
        segments = parts.path.split('/')

        collapsed = '/'.join('{id}' if NUMERIC_ID.match(s) else s for s in segments)
        for index, segment in enumerate(segments):
            if not NUMERIC_ID.match(segment):
                continue

            def build(value: int, index=index) -> str:
                changed = list(segments)
                changed[index] = str(value)
                return urlunsplit(parts._replace(path='/'.join(changed)))

            pattern = urlunsplit(parts._replace(path=collapsed, query=''))
            yield pattern, f"path segment {index}", int(segment), build

        query = parse_qsl(parts.query, keep_blank_values=True)
        for position, (name, value) in enumerate(query):
            if not NUMERIC_ID.match(value) or not self._is_potential_idor_param(name):
                continue

            def build(new_value: int, position=position) -> str:
                changed = list(query)
                changed[position] = (changed[position][0], str(new_value))
                return urlunsplit(parts._replace(query=urlencode(changed)))

            pattern = urlunsplit(parts._replace(path=collapsed, query=f"{name}={{id}}"))
            yield pattern, name, int(value), build

    def _is_potential_idor_param(self, param_name: str) -> bool:
        """Check if parameter name matches IDOR patterns"""
        param_lower = param_name.lower()
        return any(re.search(pattern, param_lower) for pattern in self.IDOR_PATTERNS)

    async def _test_idor(self, options: ProbeOptions, node: PageNode, pattern: str,
                         parameter: str, current: int,
                         build: Callable[[int], str]) -> Optional[Finding]:
        """Request the neighbouring identifiers of an object reference"""
        original = await self.probe_url(options, node.url, "baseline", parameter)
        if original is None:
            return None

        for adjacent in (current + 1, current - 1):
            if adjacent < 0:
                continue
            url = build(adjacent)
            response = await self.probe_url(options, url, "adjacent identifier", parameter)
            if response is None:
                continue

            if self._is_exposed(response, url, original):
                return self.create_finding(
                    severity_policy=options.severity_policy,
                    url=node.url,
                    parameter=parameter,
                    payload=str(adjacent),
                    evidence=(
                        f"{url} returned HTTP {response.status} with different content "
                        f"({len(original.text)} -> {len(response.text)} bytes) and no authorization check. "
                        f"Endpoint pattern: {pattern}"
                    ),
                    description=(
                        "The endpoint allows access to other objects by simply changing the identifier "
                        "without proper authorization checks."
                    ),
                )

        return None

    def _is_exposed(self, response: Document, requested_url: str, original: Document) -> bool:
        if not 200 <= response.status < 300:
            return False
        if response.redirected and response.url != normalize(requested_url):
            return False
        if response.text == original.text:
            return False
        return not self._is_error_page(response.text) and not self.LOGIN_PAGE.search(response.text)

    def _is_error_page(self, body: str) -> bool:
        """Check if response is an error page"""
        body_lower = body.lower()
        return any(indicator in body_lower for indicator in self.ERROR_INDICATORS)
