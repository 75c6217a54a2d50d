# vulnmap/scanner/access_control/path_traversal.py
"""Path Traversal / Local File Inclusion Scanner"""

import logging
import re
from typing import List, Optional

from ...crawler.site_graph import SiteGraph
from ..base import (
    BaseScanner,
    Finding,
    OWASPCategory,
    ProbeOptions,
    ProbeParam,
    ProbeTarget,
    VulnType,
    collect_targets,
)


logger = logging.getLogger(__name__)


# Patterns that indicate file parameters
FILE_PARAM_PATTERNS = [
    r'file', r'path', r'page', r'document', r'doc',
    r'folder', r'root', r'include', r'inc', r'require',
    r'template', r'tmpl', r'view', r'content', r'conf',
    r'load', r'read', r'retrieve', r'fetch',
    r'src', r'source', r'url', r'uri', r'location',
    r'img', r'image', r'pdf', r'attachment', r'download',
]

FILE_EXTENSIONS = ['.php', '.html', '.htm', '.txt', '.pdf', '.jpg', '.png', '.xml', '.json', '.inc']


def is_file_param(param_name: str, param_value: str) -> bool:
    """Check if parameter might be used for file operations"""
    param_lower = param_name.lower()
    if any(re.search(pattern, param_lower) for pattern in FILE_PARAM_PATTERNS):
        return True

    # Check if value looks like a file path
    value_lower = param_value.lower()
    if any(value_lower.endswith(ext) for ext in FILE_EXTENSIONS):
        return True
    return '/' in param_value or '\\' in param_value


def file_param_targets(graph: SiteGraph):
    """(target, param) pairs whose parameter looks like a file path"""
    for target in collect_targets(graph):
        for param in target.params:
            if is_file_param(param.name, param.value):
                yield target, param


class PathTraversalScanner(BaseScanner):
    """Scanner for Path Traversal / LFI vulnerabilities"""

    name = "Path Traversal Scanner"
    description = "Detects Path Traversal and Local File Inclusion vulnerabilities"
    vuln_type = VulnType.LFI
    title = "Local File Inclusion"
    cwe_id = "CWE-22"
    owasp_category = OWASPCategory.A01_BROKEN_ACCESS_CONTROL

    # Path traversal payloads
    PAYLOADS = [
        "../../../etc/passwd",
        "../../../../../../etc/passwd",
        "....//....//....//etc/passwd",
        "/etc/passwd",
        "file:///etc/passwd",
        "..\\..\\..\\windows\\win.ini",
        "C:\\windows\\win.ini",
    ]

    # Evidence patterns for successful traversal
    LINUX_EVIDENCE = [
        r'root:.*:0:0:',
        r'daemon:.*:1:1:',
        r'bin:.*:2:2:',
        r'nobody:.*:65534:',
    ]

    WINDOWS_EVIDENCE = [
        r'\[extensions\]',
        r'\[fonts\]',
        r'\[mci extensions\]',
        r'for 16-bit app support',
    ]

    async def run(self, graph: SiteGraph, options: ProbeOptions) -> List[Finding]:
        """Scan for path traversal vulnerabilities"""
        findings = []
        tested = set()

        for target, param in file_param_targets(graph):
            if (target.url, param.name) in tested:
                continue
            tested.add((target.url, param.name))

            finding = await self._test_path_traversal(options, target, param)
            if finding:
                findings.append(finding)

        return findings

    async def _test_path_traversal(self, options: ProbeOptions, target: ProbeTarget,
                                   param: ProbeParam) -> Optional[Finding]:
        """Test a specific parameter for path traversal"""
        baseline = await self.probe(options, target, target.baseline, "baseline", param.name)
        if baseline is None:
            return None

        for payload in self.PAYLOADS:
            response = await self.probe(
                options, target, target.with_value(param.name, payload),
                "traversal payload", param.name
            )
            if response is None:
                continue

            evidence = self._find_evidence(response.text, baseline.text)
            if evidence:
                return self.create_finding(
                    severity_policy=options.severity_policy,
                    url=target.url,
                    parameter=param.name,
                    payload=payload,
                    evidence=f"System file content detected: {evidence[:100]}",
                    description=(
                        f"The {param.name} parameter can be manipulated to include local files "
                        f"from the server."
                    ),
                )

        return None

    def _find_evidence(self, body: str, baseline: str) -> Optional[str]:
        """First system-file signature in the body that the baseline lacks"""
        for pattern in self.LINUX_EVIDENCE + self.WINDOWS_EVIDENCE:
            match = re.search(pattern, body, re.IGNORECASE)
            if match and not re.search(pattern, baseline, re.IGNORECASE):
                return match.group()
        return None
