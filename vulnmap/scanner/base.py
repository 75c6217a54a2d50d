# vulnmap/scanner/base.py
"""Base classes for all probe modules"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

from ..config.policy import DEFAULT_SEVERITY_POLICY, SeverityPolicy
from ..crawler.fetcher import Document, FetchError, Fetcher
from ..crawler.scope import in_scope, strip_query
from ..crawler.site_graph import PageNode, PageStatus, SiteGraph
from ..remediation.engine import RemediationEngine


logger = logging.getLogger(__name__)


class Severity(Enum):
    """Vulnerability severity levels, most severe first"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """0 for critical up to 4 for info"""
        return list(Severity).index(self)

    def at_least(self, other: "Severity") -> bool:
        return self.rank <= other.rank


class VulnType(Enum):
    """Vulnerability classes with a probe module"""
    XSS = "xss"
    IDOR = "idor"
    SQLI = "sqli"
    LFI = "lfi"
    RFI = "rfi"
    CSRF = "csrf"


class OWASPCategory(Enum):
    """OWASP Top 10 2021 Categories"""
    A01_BROKEN_ACCESS_CONTROL = "A01:2021 - Broken Access Control"
    A03_INJECTION = "A03:2021 - Injection"
    OTHER = "Other"


@dataclass(frozen=True)
class Finding:
    """A single reported vulnerability instance"""
    vuln_type: VulnType
    title: str
    severity: Severity
    url: str
    description: str
    evidence: str
    owasp_category: OWASPCategory = OWASPCategory.OTHER
    parameter: Optional[str] = None
    payload: Optional[str] = None
    cwe_id: Optional[str] = None
    remediation: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.vuln_type.value,
            "title": self.title,
            "severity": self.severity.value,
            "url": self.url,
            "parameter": self.parameter,
            "description": self.description,
            "evidence": self.evidence,
            "payload": self.payload,
            "remediation": self.remediation,
            "cwe_id": self.cwe_id,
            "owasp_category": self.owasp_category.value,
        }


@dataclass(frozen=True)
class InconclusiveCheck:
    """A probe check that could not complete"""
    module: str
    url: str
    check: str
    reason: str
    parameter: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "module": self.module,
            "url": self.url,
            "parameter": self.parameter,
            "check": self.check,
            "reason": self.reason,
        }


@dataclass
class ProbeOptions:
    """Everything a probe module needs besides the site graph"""
    fetcher: Fetcher
    timeout: float = 10.0
    severity_policy: SeverityPolicy = field(default_factory=SeverityPolicy)
    rfi_canary_url: str = "https://www.example.com/"
    rfi_canary_signature: str = "Example Domain"


# ==============================================================================
# PROBE TARGETS
# ==============================================================================

# Form controls that never carry user input
NON_INPUT_TYPES = ("submit", "button", "image", "reset", "file")

PLACEHOLDER_VALUES = {
    "email": "test@example.com",
    "number": "1",
    "range": "1",
    "url": "https://example.com/",
    "tel": "5555555555",
    "date": "2024-01-01",
    "password": "Password123",
    "checkbox": "on",
}


@dataclass(frozen=True)
class ProbeParam:
    name: str
    value: str
    type: str = "query"


@dataclass(frozen=True)
class ProbeTarget:
    """A GET endpoint and its baseline parameters"""
    url: str
    page_url: str
    params: Tuple[ProbeParam, ...]
    source: str = "query"
    method: str = "get"

    @property
    def baseline(self) -> Dict[str, str]:
        return {p.name: p.value for p in self.params}

    def with_value(self, name: str, value: str) -> Dict[str, str]:
        """Baseline parameters with one value replaced"""
        params = self.baseline
        params[name] = value
        return params


def _placeholder(input_type: str) -> str:
    return PLACEHOLDER_VALUES.get(input_type, "test")


def collect_targets(graph: SiteGraph) -> List[ProbeTarget]:
    """
    Derive probe targets from a frozen site graph

    GET forms with an in-scope action come first, then reachable pages whose
    URL carries a query string. Candidates are deduplicated by (URL without
    query, method, parameter names), keeping the first in graph order.
    """
    targets = []
    seen = set()

    def add(target: ProbeTarget):
        key = (target.url, target.method, tuple(sorted(p.name for p in target.params)))
        if target.params and key not in seen:
            seen.add(key)
            targets.append(target)

    for node, form in graph.forms():
        if form.method != "get" or not in_scope(form.action, graph.root_url):
            continue
        params = tuple(
            ProbeParam(inp.name, inp.value or _placeholder(inp.type), inp.type)
            for inp in form.inputs if inp.type not in NON_INPUT_TYPES
        )
        add(ProbeTarget(url=strip_query(form.action), page_url=node.url, params=params, source="form"))

    for node in graph.nodes(PageStatus.OK):
        query = urlsplit(node.url).query
        if not query:
            continue
        params = tuple(ProbeParam(name, value) for name, value in parse_qsl(query, keep_blank_values=True))
        add(ProbeTarget(url=strip_query(node.url), page_url=node.url, params=params))

    return targets


# ==============================================================================
# BASE SCANNER
# ==============================================================================

class BaseScanner(ABC):
    """
    Abstract base class for all probe modules

    A module instance serves one scan run. Checks that fail on the network
    are collected in ``self.inconclusive`` instead of aborting the module.
    """

    name: str = "Base Scanner"
    description: str = "Base scanner class"
    vuln_type: VulnType = None
    title: str = ""
    cwe_id: Optional[str] = None
    owasp_category: OWASPCategory = OWASPCategory.OTHER

    def __init__(self, remediation: Optional[RemediationEngine] = None):
        self.remediation = remediation or RemediationEngine()
        self.inconclusive: List[InconclusiveCheck] = []

    @property
    def key(self) -> str:
        return self.vuln_type.value

    @abstractmethod
    async def run(self, graph: SiteGraph, options: ProbeOptions) -> List[Finding]:
        """Probe the graph and return findings. Must be implemented by subclasses."""

    async def probe(self, options: ProbeOptions, target: ProbeTarget,
                    params: Dict[str, str], check: str,
                    parameter: Optional[str] = None) -> Optional[Document]:
        """GET the target with the given parameters, None if the request failed"""
        try:
            return await options.fetcher.request(
                "GET", target.url, params=params,
                timeout=options.timeout, raise_for_status=False
            )
        except FetchError as e:
            self.record_inconclusive(target.url, check, str(e), parameter)
            return None

    async def probe_url(self, options: ProbeOptions, url: str, check: str,
                        parameter: Optional[str] = None) -> Optional[Document]:
        """GET an absolute URL, None if the request failed"""
        try:
            return await options.fetcher.request(
                "GET", url, timeout=options.timeout, raise_for_status=False
            )
        except FetchError as e:
            self.record_inconclusive(url, check, str(e), parameter)
            return None

    def record_inconclusive(self, url: str, check: str, reason: str,
                            parameter: Optional[str] = None):
        logger.info("[%s] %s on %s inconclusive: %s", self.key, check, url, reason)
        self.inconclusive.append(InconclusiveCheck(
            module=self.key, url=url, check=check, reason=reason, parameter=parameter
        ))

    def create_finding(self, context: Optional[str] = None, **kwargs) -> Finding:
        """Helper to create a finding with module defaults"""
        kwargs.setdefault('vuln_type', self.vuln_type)
        kwargs.setdefault('title', self.title)
        kwargs.setdefault('cwe_id', self.cwe_id)
        kwargs.setdefault('owasp_category', self.owasp_category)
        kwargs.setdefault('remediation', self.remediation.get_summary(self.vuln_type))
        policy = kwargs.pop('severity_policy', DEFAULT_SEVERITY_POLICY)
        if 'severity' not in kwargs:
            kwargs['severity'] = Severity(policy.severity_for(self.key, context))
        return Finding(**kwargs)


def pages_without_login(graph: SiteGraph) -> List[PageNode]:
    """Reachable pages that host no password input"""
    return [node for node in graph.nodes(PageStatus.OK) if not node.has_password_input]
