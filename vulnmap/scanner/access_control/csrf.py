# vulnmap/scanner/access_control/csrf.py
"""Cross-Site Request Forgery (CSRF) Scanner"""

import logging
import re
from typing import List

from ...crawler.scope import in_scope
from ...crawler.site_graph import FormDescriptor, SiteGraph
from ..base import BaseScanner, Finding, OWASPCategory, ProbeOptions, VulnType


logger = logging.getLogger(__name__)


# Token field name patterns
CSRF_PATTERNS = [
    re.compile(r"csrf", re.I),
    re.compile(r"xsrf", re.I),
    re.compile(r"token", re.I),
    re.compile(r"nonce", re.I),
    re.compile(r"authenticity", re.I),
    re.compile(r"__RequestVerificationToken", re.I),
    re.compile(r"csrfmiddlewaretoken", re.I),   # Django
    re.compile(r"form_key", re.I),              # Magento
    re.compile(r"anti[-_]?forgery", re.I),
]

# Field names that are NOT CSRF tokens even if they match patterns above
CSRF_EXCLUSIONS = [
    re.compile(r"^(username|password|email|search|query|q|s|id|name|url)$", re.I),
    re.compile(r"^(file|host|lang|page|action|submit|button|type)$", re.I),
]


def is_csrf_field(field_name: str) -> bool:
    """Check if a form field name looks like an anti-CSRF token"""
    if any(excl.search(field_name) for excl in CSRF_EXCLUSIONS):
        return False
    return any(pat.search(field_name) for pat in CSRF_PATTERNS)


def has_csrf_token(form: FormDescriptor) -> bool:
    return any(is_csrf_field(inp.name) for inp in form.inputs_of_type("hidden"))


class CSRFScanner(BaseScanner):
    """
    Structural CSRF check on POST forms

    No requests are made: a same-origin POST form without a hidden
    anti-forgery input is reported once, on the first page hosting it.
    """

    name = "CSRF Scanner"
    description = "Detects state-changing forms without anti-CSRF tokens"
    vuln_type = VulnType.CSRF
    title = "Cross-Site Request Forgery"
    cwe_id = "CWE-352"
    owasp_category = OWASPCategory.A01_BROKEN_ACCESS_CONTROL

    async def run(self, graph: SiteGraph, options: ProbeOptions) -> List[Finding]:
        findings = []
        reported = set()

        for node, form in graph.forms():
            if form.method != "post" or not in_scope(form.action, graph.root_url):
                continue

            key = (form.action, form.input_names)
            if key in reported:
                continue
            reported.add(key)

            if has_csrf_token(form):
                logger.debug("[csrf] %s form to %s carries a token", node.url, form.action)
                continue

            fields = ", ".join(form.input_names) or "none"
            findings.append(self.create_finding(
                severity_policy=options.severity_policy,
                url=node.url,
                description=(
                    "The form does not implement CSRF protection, allowing attackers to submit "
                    "requests on behalf of authenticated users."
                ),
                evidence=f"POST form to {form.action} without a hidden anti-CSRF token (fields: {fields})",
            ))

        return findings
