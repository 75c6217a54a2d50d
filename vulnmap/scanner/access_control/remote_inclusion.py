# vulnmap/scanner/access_control/remote_inclusion.py
"""Remote File Inclusion Scanner"""

import re
from typing import List, Optional
from urllib.parse import urlsplit

from ...crawler.site_graph import SiteGraph
from ..base import (
    BaseScanner,
    Finding,
    OWASPCategory,
    ProbeOptions,
    ProbeParam,
    ProbeTarget,
    VulnType,
)
from .path_traversal import file_param_targets


class RemoteFileInclusionScanner(BaseScanner):
    """
    Scanner for Remote File Inclusion

    The parameter is pointed at a canary URL. The include is confirmed when
    the canary's signature text shows up in the response, or when the
    server reports a failed remote include that names the payload.
    """

    name = "RFI Scanner"
    description = "Detects Remote File Inclusion vulnerabilities"
    vuln_type = VulnType.RFI
    title = "Remote File Inclusion"
    cwe_id = "CWE-98"
    owasp_category = OWASPCategory.A03_INJECTION

    INCLUDE_ERRORS = [
        r'failed to open stream',
        r'failed opening .* for inclusion',
        r'allow_url_include',
        r'URL file-access is disabled',
        r'include(_once)?\(\)',
        r'require(_once)?\(\)',
    ]

    async def run(self, graph: SiteGraph, options: ProbeOptions) -> List[Finding]:
        findings = []
        tested = set()

        for target, param in file_param_targets(graph):
            if (target.url, param.name) in tested:
                continue
            tested.add((target.url, param.name))

            finding = await self._test_remote_include(options, target, param)
            if finding:
                findings.append(finding)

        return findings

    def _payloads(self, options: ProbeOptions) -> List[str]:
        canary = options.rfi_canary_url
        # A trailing "?" swallows any extension the application appends
        return [canary, f"{canary}?"]

    async def _test_remote_include(self, options: ProbeOptions, target: ProbeTarget,
                                   param: ProbeParam) -> Optional[Finding]:
        baseline = await self.probe(options, target, target.baseline, "baseline", param.name)
        if baseline is None:
            return None

        signature = options.rfi_canary_signature
        if signature and signature in baseline.text:
            self.record_inconclusive(
                target.url, "canary signature", "signature already present in baseline", param.name
            )
            return None

        for payload in self._payloads(options):
            response = await self.probe(
                options, target, target.with_value(param.name, payload),
                "remote include payload", param.name
            )
            if response is None:
                continue

            if signature and signature in response.text:
                evidence = f"Canary signature '{signature}' from {payload} included in the response"
            else:
                evidence = self._include_error(response.text, baseline.text, payload)
            if evidence:
                return self.create_finding(
                    severity_policy=options.severity_policy,
                    url=target.url,
                    parameter=param.name,
                    payload=payload,
                    evidence=evidence,
                    description=(
                        f"The {param.name} parameter can be manipulated to include remote files "
                        f"from external servers."
                    ),
                )

        return None

    def _include_error(self, body: str, baseline: str, payload: str) -> Optional[str]:
        """A remote-include error naming the payload, absent from the baseline"""
        host = urlsplit(payload).hostname or payload
        if payload not in body and host not in body:
            return None
        for pattern in self.INCLUDE_ERRORS:
            match = re.search(pattern, body, re.IGNORECASE)
            if match and not re.search(pattern, baseline, re.IGNORECASE):
                return f"Remote include attempted: {match.group()} referencing {host}"
        return None
