# vulnmap/reports/generator.py
from typing import Optional
from datetime import date, datetime
from urllib.parse import urlsplit
import hashlib
import json

from .. import __version__
from ..crawler.site_graph import SiteGraph
from ..remediation.engine import RemediationEngine
from ..scanner.base import Severity
from .aggregator import ScanResult


# --fail-on thresholds mapped to the least severe severity that trips them
FAIL_ON_THRESHOLDS = {
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "any": Severity.INFO,
}


def default_report_filename(target: str, when: Optional[date] = None) -> str:
    """security-scan-<host>-<YYYY-MM-DD>.json"""
    host = urlsplit(target).hostname or "target"
    when = when or date.today()
    return f"security-scan-{host}-{when.isoformat()}.json"


class ReportGenerator:
    """Generate security scan reports in various formats"""

    def __init__(self, remediation: Optional[RemediationEngine] = None):
        self.remediation = remediation or RemediationEngine()

    def generate_json_report(self, result: ScanResult, timestamp: Optional[str] = None) -> str:
        """Generate JSON report with stable field order"""
        report = result.to_dict(timestamp or datetime.now().isoformat())
        return json.dumps(report, indent=2)

    def generate_sarif_report(self, result: ScanResult) -> str:
        """Generate SARIF format for GitHub/IDE integration"""
        rules = []
        results = []

        rule_ids = {}

        for finding in result.findings:
            # Create rule if not exists
            rule_id = finding.vuln_type.value
            if rule_id not in rule_ids:
                rule_ids[rule_id] = len(rules)

                rule_def = {
                    "id": rule_id,
                    "name": finding.title,
                    "shortDescription": {"text": finding.title},
                    "fullDescription": {"text": finding.description},
                    "defaultConfiguration": {
                        "level": self._severity_to_sarif_level(finding.severity.value)
                    },
                    "properties": {"tags": ["security", finding.owasp_category.value]}
                }

                # Add help text with remediation and references if available
                references = self.remediation.get_references(finding.vuln_type)
                if finding.remediation:
                    markdown = finding.remediation
                    if references:
                        markdown += "\n\n**References:**\n" + "\n".join(f"- {ref}" for ref in references)
                    rule_def["help"] = {"text": finding.remediation, "markdown": markdown}
                if references:
                    rule_def["properties"]["references"] = references

                if finding.cwe_id:
                    rule_def["helpUri"] = f"https://cwe.mitre.org/data/definitions/{finding.cwe_id.replace('CWE-', '')}.html"

                rules.append(rule_def)

            fingerprint = hashlib.sha256(
                f"{finding.vuln_type.value}|{finding.url}|{finding.parameter}".encode()
            ).hexdigest()

            results.append({
                "ruleId": rule_id,
                "ruleIndex": rule_ids[rule_id],
                "level": self._severity_to_sarif_level(finding.severity.value),
                "message": {"text": f"{finding.title} found at {finding.url}: {finding.evidence}"},
                "locations": [{
                    "physicalLocation": {
                        "artifactLocation": {"uri": finding.url}
                    }
                }],
                "partialFingerprints": {
                    "primaryLocationLineHash": fingerprint
                },
                "properties": {
                    "id": finding.id,
                    "severity": finding.severity.value,
                    "parameter": finding.parameter,
                    "payload": finding.payload
                }
            })

        sarif = {
            "$schema": "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json",
            "version": "2.1.0",
            "runs": [{
                "tool": {
                    "driver": {
                        "name": "vulnmap",
                        "version": __version__,
                        "rules": rules
                    }
                },
                "results": results,
                "properties": {
                    "target": result.target,
                    "scanType": result.scan_type,
                    "score": result.score
                }
            }]
        }

        return json.dumps(sarif, indent=2)

    def generate_sitemap_report(self, graph: SiteGraph) -> str:
        """Export the crawled site map"""
        report = {
            "root": graph.root_url,
            "summary": graph.summary(),
            "pages": graph.to_dict(),
            "excluded": {url: status.value for url, status in sorted(graph.excluded.items())},
            "redirects": dict(sorted(graph.redirects.items())),
        }
        return json.dumps(report, indent=2)

    def determine_exit_code(self, result: ScanResult, fail_on: str = "none") -> int:
        """1 when a finding at or above the --fail-on threshold exists, else 0"""
        threshold = FAIL_ON_THRESHOLDS.get(fail_on)
        if threshold is None:
            return 0
        return int(any(f.severity.at_least(threshold) for f in result.findings))

    def _severity_to_sarif_level(self, severity: str) -> str:
        """Convert severity to SARIF level"""
        mapping = {
            "critical": "error",
            "high": "error",
            "medium": "warning",
            "low": "note",
            "info": "note"
        }
        return mapping.get(severity, "warning")
