# vulnmap/scanner/vuln_scanner.py
"""Main scan orchestrator: crawl, run probe modules, aggregate"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional, Tuple, Type, Union

import aiohttp

from ..config.policy import ScorePolicy, SeverityPolicy, DEFAULT_SCORE_POLICY, DEFAULT_SEVERITY_POLICY
from ..config.scan_profiles import ScanConfig
from ..crawler.fetcher import Fetcher
from ..crawler.scope import normalize, origin_url
from ..crawler.site_graph import PageStatus, SiteGraph
from ..crawler.spider import AsyncWebCrawler
from ..errors import UnreachableTarget
from ..reports.aggregator import ScanResult, aggregate
from .base import BaseScanner, Finding, InconclusiveCheck, ProbeOptions
from .parallel_executor import ModuleResult, ParallelScanExecutor

from .xss.xss import XSSScanner
from .access_control.idor import IDORScanner
from .injection.sqli import SQLInjectionScanner
from .access_control.path_traversal import PathTraversalScanner
from .access_control.remote_inclusion import RemoteFileInclusionScanner
from .access_control.csrf import CSRFScanner


logger = logging.getLogger(__name__)


class ScanType(Enum):
    XSS = "xss"
    IDOR = "idor"
    SQLI = "sqli"
    LFI = "lfi"
    RFI = "rfi"
    CSRF = "csrf"
    COMPREHENSIVE = "comprehensive"


class ScanState(Enum):
    IDLE = "idle"
    CRAWLING = "crawling"
    SCANNING = "scanning"
    DONE = "done"
    FAILED = "failed"


# Findings are merged in this order regardless of completion order
MODULE_PRIORITY = ['xss', 'idor', 'sqli', 'lfi', 'rfi', 'csrf']

SCANNER_CLASSES: Dict[str, Type[BaseScanner]] = {
    'xss': XSSScanner,
    'idor': IDORScanner,
    'sqli': SQLInjectionScanner,
    'lfi': PathTraversalScanner,
    'rfi': RemoteFileInclusionScanner,
    'csrf': CSRFScanner,
}


class VulnerabilityScanner:
    """
    Scan orchestrator: idle -> crawling -> scanning -> done (or failed).

    One instance drives one scan at a time; every call to scan() or
    scan_graph() builds its own graph, modules and result.

    Args:
        config: Validated scan configuration (defaults to the standard profile)
        severity_policy: Per-type default severities
        score_policy: Letter-grade bands and severity weights
        fetcher: Pre-built fetcher, used instead of opening a session
        scanner_classes: Module registry keyed by scan type value
    """

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        severity_policy: Optional[SeverityPolicy] = None,
        score_policy: Optional[ScorePolicy] = None,
        fetcher: Optional[Fetcher] = None,
        scanner_classes: Optional[Dict[str, Type[BaseScanner]]] = None
    ):
        self.config = config or ScanConfig()
        self.severity_policy = severity_policy or DEFAULT_SEVERITY_POLICY
        self.score_policy = score_policy or DEFAULT_SCORE_POLICY
        self.fetcher = fetcher
        self.scanner_classes = scanner_classes or SCANNER_CLASSES

        self.state = ScanState.IDLE
        self.graph: Optional[SiteGraph] = None
        self.result: Optional[ScanResult] = None
        self.crawl_stats: Dict = {}
        self.module_results: List[ModuleResult] = []

        # Progress callback
        self._progress_callback = None

    def set_progress_callback(self, callback):
        """
        Set progress callback: callback(completed, total, message)

        Called once with completed=0 when the scan phase starts, then once
        per finished module.
        """
        self._progress_callback = callback

    def select_modules(self, scan_type: Union[str, ScanType]) -> List[Tuple[str, BaseScanner]]:
        """Fresh module instances for a scan type, in priority order"""
        scan_type = ScanType(scan_type)
        if scan_type is ScanType.COMPREHENSIVE:
            names = MODULE_PRIORITY
        else:
            names = [scan_type.value]
        return [(name, self.scanner_classes[name]()) for name in names if name in self.scanner_classes]

    async def crawl(
        self,
        target_url: str,
        cancel_event: Optional[asyncio.Event] = None
    ) -> SiteGraph:
        """
        Crawl only and return the frozen site graph.

        Raises:
            InvalidURL: before any network activity
            UnreachableTarget: the root page could not be fetched
        """
        root = normalize(target_url)
        self.graph = None
        self.result = None

        async with self.open_fetcher() as fetcher:
            graph = await self._crawl(root, fetcher, cancel_event)
        self.state = ScanState.DONE
        return graph

    async def scan(
        self,
        target_url: str,
        scan_type: Union[str, ScanType] = ScanType.COMPREHENSIVE,
        cancel_event: Optional[asyncio.Event] = None
    ) -> ScanResult:
        """
        Crawl the target and run the selected probe modules.

        Raises:
            InvalidURL: before any network activity
            ValueError: unknown scan type
            UnreachableTarget: the root page could not be fetched
        """
        root = normalize(target_url)
        scan_type = ScanType(scan_type)
        self.graph = None
        self.result = None

        async with self.open_fetcher() as fetcher:
            graph = await self._crawl(root, fetcher, cancel_event)
            return await self._scan_phase(graph, scan_type, fetcher, cancel_event)

    async def _crawl(
        self,
        root: str,
        fetcher: Fetcher,
        cancel_event: Optional[asyncio.Event]
    ) -> SiteGraph:
        crawler = AsyncWebCrawler(
            root,
            max_depth=self.config.crawl.max_depth,
            max_pages=self.config.crawl.max_pages,
            max_concurrency=self.config.http.max_concurrency,
            request_timeout=self.config.http.request_timeout,
            time_budget=self.config.crawl.time_budget,
            max_retries=self.config.crawl.max_retries,
            retry_delay=self.config.crawl.retry_delay,
            fetcher=fetcher
        )

        self.state = ScanState.CRAWLING
        logger.info("Crawling %s", root)
        try:
            graph = await crawler.crawl(cancel_event)
        except UnreachableTarget:
            self.state = ScanState.FAILED
            self.graph = crawler.graph
            raise
        finally:
            self.crawl_stats = dict(crawler.stats)

        self.graph = graph
        if not graph.nodes(PageStatus.OK):
            self.state = ScanState.FAILED
            raise UnreachableTarget(root, "no reachable pages")
        return graph

    async def scan_graph(
        self,
        graph: SiteGraph,
        scan_type: Union[str, ScanType] = ScanType.COMPREHENSIVE,
        cancel_event: Optional[asyncio.Event] = None
    ) -> ScanResult:
        """Run only the scan phase against an existing frozen graph"""
        if not graph.frozen:
            raise ValueError("scan_graph() requires a frozen site graph")
        scan_type = ScanType(scan_type)
        self.graph = graph

        async with self.open_fetcher() as fetcher:
            return await self._scan_phase(graph, scan_type, fetcher, cancel_event)

    async def _scan_phase(
        self,
        graph: SiteGraph,
        scan_type: ScanType,
        fetcher: Fetcher,
        cancel_event: Optional[asyncio.Event]
    ) -> ScanResult:
        self.state = ScanState.SCANNING
        modules = self.select_modules(scan_type)
        options = ProbeOptions(
            fetcher=fetcher,
            timeout=self.config.http.request_timeout,
            severity_policy=self.severity_policy,
            rfi_canary_url=self.config.probes.rfi_canary_url,
            rfi_canary_signature=self.config.probes.rfi_canary_signature,
        )

        executor = ParallelScanExecutor(
            max_concurrent_modules=self.config.probes.max_concurrent_modules,
            time_budget=self.config.probes.time_budget
        )
        if self._progress_callback:
            executor.set_progress_callback(self._progress_callback)
            self._progress_callback(0, len(modules), "crawl complete")

        logger.info("Running %d probe module(s) against %d page(s)", len(modules), len(graph))
        try:
            self.module_results = await executor.execute_all(modules, graph, options, cancel_event)
        except BaseException:
            self.state = ScanState.FAILED
            raise

        findings, inconclusive = self._merge(self.module_results, graph.root_url)
        self.result = aggregate(
            findings,
            scan_type=scan_type,
            target=origin_url(graph.root_url),
            inconclusive=inconclusive,
            policy=self.score_policy
        )
        self.state = ScanState.DONE
        logger.info("Scan finished: %d finding(s), score %s", self.result.total_findings, self.result.score)
        return self.result

    def _merge(self, results: List[ModuleResult], root_url: str) -> Tuple[List[Finding], List[InconclusiveCheck]]:
        """Concatenate module output in priority order and stamp finding ids"""
        findings: List[Finding] = []
        inconclusive: List[InconclusiveCheck] = []

        for result in results:
            findings.extend(result.findings)
            inconclusive.extend(result.inconclusive)
            if result.cancelled or result.error:
                inconclusive.append(InconclusiveCheck(
                    module=result.scanner_name,
                    url=root_url,
                    check="module",
                    reason=result.error or "cancelled"
                ))

        findings = self._deduplicate(findings)
        return [replace(f, id=f"vuln-{i}") for i, f in enumerate(findings, 1)], inconclusive

    def _deduplicate(self, findings: List[Finding]) -> List[Finding]:
        """Remove duplicate findings, keeping the first"""
        seen = set()
        unique = []

        for finding in findings:
            key = (finding.vuln_type, finding.url, finding.parameter)
            if key not in seen:
                seen.add(key)
                unique.append(finding)

        return unique

    @asynccontextmanager
    async def open_fetcher(self) -> AsyncIterator[Fetcher]:
        """Fetcher for one scan run, over a session carrying the configured User-Agent"""
        if self.fetcher is not None:
            yield self.fetcher
            return

        http = self.config.http
        connector = aiohttp.TCPConnector(limit=http.max_concurrency * 2)
        async with aiohttp.ClientSession(
            connector=connector,
            headers={"User-Agent": http.user_agent}
        ) as session:
            yield Fetcher(
                session,
                max_concurrency=http.max_concurrency,
                default_timeout=http.request_timeout,
                requests_per_second=http.requests_per_second,
                verify_tls=http.verify_tls
            )

    def get_scanner_info(self) -> Dict:
        """Get information about available probe modules"""
        return {
            name: {
                "name": cls.name,
                "description": cls.description,
                "owasp_category": cls.owasp_category.value,
                "cwe_id": cls.cwe_id,
            }
            for name, cls in self.scanner_classes.items()
        }
