# vulnmap/scanner/xss/xss.py
"""Cross-Site Scripting (XSS) Scanner"""

import logging
import re
from typing import Dict, List, Optional

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


class XSSScanner(BaseScanner):
    """Reflected Cross-Site Scripting scanner"""

    name = "XSS Scanner"
    description = "Detects reflected XSS in text inputs and query parameters"
    vuln_type = VulnType.XSS
    title = "Reflected XSS"
    cwe_id = "CWE-79"
    owasp_category = OWASPCategory.A03_INJECTION

    # Unique identifier for reflection detection
    XSS_CANARY = "vUlNmApXsS"

    # Parameter types worth probing; "query" marks a query-string parameter
    TEXT_INPUT_TYPES = ("text", "search", "query")

    # XSS payloads organized by reflection context
    CONTEXT_PAYLOADS = {
        'html_body': [
            f'<script>alert("{XSS_CANARY}")</script>',
            f'<img src=x onerror=alert("{XSS_CANARY}")>',
            f'<svg/onload=alert("{XSS_CANARY}")>',
        ],
        'attribute_double': [
            f'"><script>alert("{XSS_CANARY}")</script>',
            f'" onmouseover="alert(\'{XSS_CANARY}\')"',
        ],
        'attribute_single': [
            f"'><script>alert('{XSS_CANARY}')</script>",
            f"' onmouseover='alert(\"{XSS_CANARY}\")'",
        ],
        'tag': [
            f'><script>alert("{XSS_CANARY}")</script>',
            f' onmouseover=alert("{XSS_CANARY}") ',
        ],
        'url_attribute': [
            f'javascript:alert("{XSS_CANARY}")',
            f'"><script>alert("{XSS_CANARY}")</script>',
        ],
        'event_handler': [
            f"');alert('{XSS_CANARY}');//",
            f'");alert("{XSS_CANARY}");//',
        ],
        'javascript': [
            f'</script><script>alert("{XSS_CANARY}")</script>',
            f"';alert('{XSS_CANARY}');//",
            f'";alert("{XSS_CANARY}");//',
        ],
        'css': [
            f'</style><script>alert("{XSS_CANARY}")</script>',
        ],
        'comment': [
            f'--><script>alert("{XSS_CANARY}")</script>',
        ],
    }

    # Contexts where the reflection already sits inside script or markup
    EXECUTABLE_CONTEXTS = (
        'javascript', 'event_handler', 'url_attribute',
        'attribute_double', 'attribute_single', 'tag',
    )

    async def run(self, graph: SiteGraph, options: ProbeOptions) -> List[Finding]:
        """Scan for XSS vulnerabilities"""
        findings = []
        tested = set()

        for target in collect_targets(graph):
            for param in target.params:
                if param.type not in self.TEXT_INPUT_TYPES:
                    continue
                if (target.url, param.name) in tested:
                    continue
                tested.add((target.url, param.name))

                finding = await self._test_reflected_xss(options, target, param)
                if finding:
                    findings.append(finding)

        return findings

    async def _test_reflected_xss(self, options: ProbeOptions, target: ProbeTarget,
                                  param: ProbeParam) -> Optional[Finding]:
        """Test for reflected XSS"""

        # First, test basic reflection
        response = await self.probe(
            options, target, target.with_value(param.name, self.XSS_CANARY),
            "canary reflection", param.name
        )
        if response is None or self.XSS_CANARY not in response.text:
            return None

        context = self._determine_context(response.text, self.XSS_CANARY)
        logger.debug("[xss] %s reflects %s in %s context", target.url, param.name, context)

        for payload in self.CONTEXT_PAYLOADS.get(context, self.CONTEXT_PAYLOADS['html_body']):
            response = await self.probe(
                options, target, target.with_value(param.name, payload),
                "payload reflection", param.name
            )
            if response is None:
                continue

            # Raw, unescaped reflection only
            if payload in response.text:
                return self.create_finding(
                    context="executable_context" if context in self.EXECUTABLE_CONTEXTS else None,
                    severity_policy=options.severity_policy,
                    url=target.url,
                    parameter=param.name,
                    payload=payload,
                    evidence=f"Context: {context}, payload reflected unescaped: {self._snippet(response.text, payload)}",
                    description=(
                        f"The {param.name} parameter is reflected in the page ({context.replace('_', ' ')} "
                        f"context) without proper encoding, allowing script injection."
                    ),
                )

        logger.debug("[xss] %s reflects %s but encodes every payload", target.url, param.name)
        return None

    def _determine_context(self, body: str, canary: str) -> str:
        """Determine the HTML context where input is reflected"""
        pos = body.find(canary)
        if pos == -1:
            return "unknown"

        before = body[:pos]
        lowered = before.lower()

        # Inside an open element whose close has not been seen yet
        if lowered.rfind('<script') > lowered.rfind('</script'):
            return "javascript"
        if lowered.rfind('<style') > lowered.rfind('</style'):
            return "css"
        if before.rfind('<!--') > before.rfind('-->'):
            return "comment"

        # Inside an HTML tag
        tag_start = before.rfind('<')
        if tag_start > before.rfind('>'):
            tag_text = before[tag_start:]
            if re.search(r'\son\w+\s*=\s*["\']?[^"\'>]*$', tag_text, re.IGNORECASE):
                return "event_handler"
            if re.search(r'(href|src|action|formaction)\s*=\s*["\']?[^"\'>]*$', tag_text, re.IGNORECASE):
                return "url_attribute"
            if re.search(r'=\s*"[^"]*$', tag_text):
                return "attribute_double"
            if re.search(r"=\s*'[^']*$", tag_text):
                return "attribute_single"
            return "tag"

        # Default: HTML body
        return "html_body"

    @staticmethod
    def _snippet(body: str, payload: str, radius: int = 40) -> str:
        pos = body.find(payload)
        start = max(0, pos - radius)
        end = min(len(body), pos + len(payload) + radius)
        return body[start:end].strip()[:200]
