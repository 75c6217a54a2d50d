# vulnmap/scanner/__init__.py
"""
VulnMap Scanner Module

Probe modules for reflected XSS, IDOR, SQL injection, local and remote file
inclusion and missing CSRF tokens, plus the executor that runs them.

The orchestrator lives in vulnmap.scanner.vuln_scanner.
"""

from .base import (
    BaseScanner,
    Finding,
    InconclusiveCheck,
    OWASPCategory,
    ProbeOptions,
    ProbeTarget,
    Severity,
    VulnType,
    collect_targets,
)
from .parallel_executor import ModuleResult, ParallelScanExecutor

# Import all scanner classes for direct access
from .xss.xss import XSSScanner
from .access_control.idor import IDORScanner
from .injection.sqli import SQLInjectionScanner
from .access_control.path_traversal import PathTraversalScanner
from .access_control.remote_inclusion import RemoteFileInclusionScanner
from .access_control.csrf import CSRFScanner

__all__ = [
    'BaseScanner',
    'Finding',
    'InconclusiveCheck',
    'OWASPCategory',
    'ProbeOptions',
    'ProbeTarget',
    'Severity',
    'VulnType',
    'collect_targets',
    'ModuleResult',
    'ParallelScanExecutor',
    'XSSScanner',
    'IDORScanner',
    'SQLInjectionScanner',
    'PathTraversalScanner',
    'RemoteFileInclusionScanner',
    'CSRFScanner',
]
