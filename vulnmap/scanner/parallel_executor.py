"""Parallel execution engine for probe modules"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from ..crawler.site_graph import SiteGraph
from .base import BaseScanner, Finding, InconclusiveCheck, ProbeOptions


logger = logging.getLogger(__name__)


@dataclass
class ModuleResult:
    """Result from one probe module"""
    scanner_name: str
    findings: List[Finding] = field(default_factory=list)
    inconclusive: List[InconclusiveCheck] = field(default_factory=list)
    duration: float = 0.0
    error: Optional[str] = None
    cancelled: bool = False


class ParallelScanExecutor:
    """
    Executes probe modules concurrently with a bound on how many run at once.

    Results come back in the order the modules were given, whatever order
    they finish in. Modules still running when the time budget expires or
    the cancel event is set are cancelled and returned as cancelled results
    with no findings.
    """

    def __init__(
        self,
        max_concurrent_modules: int = 3,
        time_budget: Optional[float] = None
    ):
        """
        Initialize the parallel executor.

        Args:
            max_concurrent_modules: Max modules running simultaneously
            time_budget: Wall-clock budget for the whole batch in seconds
        """
        self.max_concurrent_modules = max_concurrent_modules
        self.time_budget = time_budget

        # Statistics
        self.stats = {
            "total_tasks": 0,
            "completed_tasks": 0,
            "failed_tasks": 0,
            "cancelled_tasks": 0,
            "total_duration": 0.0
        }

        # Progress callback
        self._progress_callback = None

    def set_progress_callback(self, callback: Callable[[int, int, str], None]):
        """Set a callback for progress updates: callback(completed, total, message)"""
        self._progress_callback = callback

    async def execute_module(
        self,
        name: str,
        scanner: BaseScanner,
        graph: SiteGraph,
        options: ProbeOptions,
        semaphore: asyncio.Semaphore
    ) -> ModuleResult:
        """Run a single module; unexpected errors become a failed result"""
        async with semaphore:
            start_time = time.monotonic()
            logger.debug("[%s] module started", name)
            try:
                findings = await scanner.run(graph, options)
            except Exception as e:
                logger.exception("Probe module %s failed: %s", name, e)
                self.stats["failed_tasks"] += 1
                return ModuleResult(
                    scanner_name=name,
                    inconclusive=list(scanner.inconclusive),
                    duration=time.monotonic() - start_time,
                    error=f"{type(e).__name__}: {e}"
                )

            duration = time.monotonic() - start_time
            logger.debug("[%s] module finished in %.2fs with %d findings", name, duration, len(findings))
            return ModuleResult(
                scanner_name=name,
                findings=list(findings),
                inconclusive=list(scanner.inconclusive),
                duration=duration
            )

    async def execute_all(
        self,
        scanners: List[Tuple[str, BaseScanner]],
        graph: SiteGraph,
        options: ProbeOptions,
        cancel_event: Optional[asyncio.Event] = None
    ) -> List[ModuleResult]:
        """
        Execute all modules against the graph.

        Returns:
            One ModuleResult per module, in input order
        """
        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.max_concurrent_modules)
        self.stats["total_tasks"] += len(scanners)

        tasks = [
            asyncio.create_task(self.execute_module(name, scanner, graph, options, semaphore))
            for name, scanner in scanners
        ]
        cancel_waiter = asyncio.create_task(cancel_event.wait()) if cancel_event else None
        stop_reason = None

        pending = set(tasks)
        completed = 0
        try:
            while pending:
                remaining = None
                if self.time_budget is not None:
                    remaining = self.time_budget - (time.monotonic() - start_time)
                    if remaining <= 0:
                        stop_reason = "time budget exhausted"
                        break

                waiting = pending | {cancel_waiter} if cancel_waiter else pending
                done, _ = await asyncio.wait(waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)

                # Modules that finished alongside the cancel signal still count
                for task in done - {cancel_waiter}:
                    pending.discard(task)
                    completed += 1
                    if self._progress_callback:
                        self._progress_callback(completed, len(tasks), task.result().scanner_name)

                if cancel_waiter and cancel_waiter in done:
                    stop_reason = "cancelled"
                    break
                if not done:
                    stop_reason = "time budget exhausted"
                    break
        finally:
            leftovers = list(pending) + ([cancel_waiter] if cancel_waiter else [])
            for task in leftovers:
                task.cancel()
            await asyncio.gather(*leftovers, return_exceptions=True)

        if stop_reason:
            logger.warning("Scan phase stopped (%s); %d module(s) unfinished", stop_reason, len(pending))

        results = []
        for (name, _), task in zip(scanners, tasks):
            if task in pending:
                self.stats["cancelled_tasks"] += 1
                results.append(ModuleResult(scanner_name=name, cancelled=True, error=stop_reason))
            else:
                result = task.result()
                if result.error is None:
                    self.stats["completed_tasks"] += 1
                results.append(result)

        self.stats["total_duration"] += time.monotonic() - start_time
        return results
