"""
Narrative security report generation

Sends the findings to an OpenAI-compatible chat-completions endpoint (Groq by
default) and returns the markdown report it writes. Without an API key, or
when the service fails in any way, a deterministic local report is built
from the same findings instead.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence

import aiohttp

from ..errors import NarrativeGenerationUnavailable
from ..remediation.engine import RemediationEngine
from ..scanner.base import Finding, Severity
from .aggregator import count_by_severity


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_MODEL = "llama-3.3-70b-versatile"

SYSTEM_PROMPT = (
    "You are a cybersecurity expert analyzing vulnerability scan results. "
    "Write clear, accurate reports for both technical and non-technical readers."
)

GENERAL_RECOMMENDATIONS = [
    ("Implement Input Validation", "All user inputs should be validated on both client and server sides."),
    ("Apply Output Encoding", "Use context-appropriate encoding for all dynamic content."),
    ("Deploy Content Security Policy (CSP)", "Restrict resource loading to trusted sources."),
    ("Use Parameterized Queries", "Never concatenate user input directly into database queries."),
    ("Implement Proper Access Controls", "Verify user permissions for all resource access."),
    ("Regular Security Testing", "Conduct periodic security assessments to identify new vulnerabilities."),
    ("Keep Systems Updated", "Regularly update all software components to patch known vulnerabilities."),
]

SEVERITY_IMPACT = {
    Severity.CRITICAL: (
        "This vulnerability poses an immediate threat to the application and could lead to complete "
        "system compromise, data breaches, or service disruption."
    ),
    Severity.HIGH: (
        "This vulnerability represents a significant risk to the application security and could lead "
        "to unauthorized access to sensitive data or functionality."
    ),
    Severity.MEDIUM: (
        "This vulnerability presents a moderate risk and could be exploited in combination with other "
        "vulnerabilities to escalate privileges or access protected resources."
    ),
    Severity.LOW: (
        "This vulnerability presents a minimal risk but should still be addressed as part of a "
        "defense-in-depth security strategy."
    ),
}


@dataclass(frozen=True)
class NarrativeReport:
    report_text: str
    is_fallback: bool


class NarrativeGenerator:
    """
    Client for the external narrative service with a local fallback.

    Args:
        api_key: API key; falls back to the GROQ_API_KEY environment variable
        base_url: Chat-completions endpoint
        model: Model name sent with the request
        timeout: Total request timeout in seconds
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        # Priority: Manual input > Environment variable > None
        self.api_key = api_key or os.environ.get("GROQ_API_KEY")
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self._session = session

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def generate(self, findings: Sequence[Finding], target_url: str, scan_type: str) -> NarrativeReport:
        """Narrative report for the findings; never raises"""
        if not self.enabled:
            logger.info("No narrative API key configured, using the local report")
            return NarrativeReport(self.fallback_report(findings, target_url, scan_type), is_fallback=True)

        try:
            text = await self._request(self.build_prompt(findings, target_url, scan_type))
        except NarrativeGenerationUnavailable as e:
            logger.warning("Narrative generation failed (%s), using the local report", e)
            return NarrativeReport(self.fallback_report(findings, target_url, scan_type), is_fallback=True)

        return NarrativeReport(text, is_fallback=False)

    def build_prompt(self, findings: Sequence[Finding], target_url: str, scan_type: str) -> str:
        vulnerabilities_text = "\n---\n".join(self._describe(f) for f in findings) or "None"
        return f"""You are a cybersecurity expert analyzing vulnerability scan results. Generate a comprehensive security report based on the following scan data:

Target Website: {target_url}
Scan Type: {scan_type}

Vulnerabilities Found:
{vulnerabilities_text}

Your report should include:
1. An executive summary of the findings
2. Detailed analysis of each vulnerability with clear explanations in plain language
3. Risk assessment for the organization
4. Prioritized remediation steps with code examples where appropriate
5. General security recommendations

Format the report in markdown with appropriate headings and sections.
"""

    @staticmethod
    def _describe(finding: Finding) -> str:
        lines = [
            f"Type: {finding.title}",
            f"Severity: {finding.severity.value}",
            f"URL: {finding.url}",
            f"Description: {finding.description}",
        ]
        if finding.payload:
            lines.append(f"Payload: {finding.payload}")
        return "\n".join(lines)

    async def _request(self, prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        data = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt}
            ],
            "temperature": 0.7,
            "max_tokens": 2000
        }

        session = self._session or aiohttp.ClientSession()
        try:
            async with session.post(
                self.base_url,
                headers=headers,
                json=data,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    raise NarrativeGenerationUnavailable(f"service returned HTTP {response.status}")
                result = await response.json(content_type=None)
        except NarrativeGenerationUnavailable:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise NarrativeGenerationUnavailable(f"{type(e).__name__}: {str(e)[:100]}") from e
        finally:
            if self._session is None:
                await session.close()

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise NarrativeGenerationUnavailable("malformed response") from e
        if not isinstance(content, str) or not content.strip():
            raise NarrativeGenerationUnavailable("empty report")
        return content

    # ------------------------------------------------------------------
    # Local report
    # ------------------------------------------------------------------

    def fallback_report(self, findings: Sequence[Finding], target_url: str, scan_type: str) -> str:
        counts = count_by_severity(findings)
        total = len(findings)

        if total:
            outlook = ("These findings indicate significant security concerns that should be addressed "
                       "promptly to prevent potential exploitation.")
        else:
            outlook = ("No vulnerabilities were detected in this scan, suggesting good security practices "
                       "are in place for the tested vectors.")

        sections = [
            "# Security Assessment Report",
            "## Executive Summary",
            f"A security assessment was conducted on **{target_url}** focusing on {scan_type} vulnerabilities. "
            f"The scan identified **{total} vulnerabilities** of varying severity levels:",
            "\n".join(
                f"- {severity.value.capitalize()}: {counts[severity.value]}"
                for severity in Severity if severity is not Severity.INFO
            ),
            outlook,
            "## Vulnerability Details",
        ]
        sections.extend(self._finding_section(f) for f in findings)
        sections.extend([
            "## Risk Assessment",
            self._risk_assessment(total, counts),
            "## Remediation Priorities",
            self._remediation_priorities(findings),
            "## General Security Recommendations",
            "\n".join(
                f"{i}. **{title}:** {text}"
                for i, (title, text) in enumerate(GENERAL_RECOMMENDATIONS, 1)
            ),
            "---",
            "*Note: This report was generated locally without the narrative service. "
            "Set GROQ_API_KEY for a more detailed analysis.*",
        ])
        return "\n\n".join(sections) + "\n"

    @staticmethod
    def _finding_section(finding: Finding) -> str:
        lines = [
            f"### {finding.title} ({finding.severity.value.upper()})",
            f"**Description:** {finding.description}",
            f"**Affected URL:** `{finding.url}`",
        ]
        if finding.payload:
            lines.append(f"**Example Payload:** `{finding.payload}`")
        lines.append(f"**Remediation:** {finding.remediation}")
        references = RemediationEngine().get_references(finding.vuln_type)
        if references:
            lines.append("**References:** " + ", ".join(references))
        lines.append(f"**Impact:** {SEVERITY_IMPACT.get(finding.severity, 'The impact of this vulnerability is undetermined.')}")
        return "\n\n".join(lines)

    @staticmethod
    def _risk_assessment(total: int, counts: dict) -> str:
        if total == 0:
            return ("Based on this scan, the application appears to have good security controls in place for "
                    "the tested vectors. However, this does not guarantee complete security, and regular "
                    "testing should continue.")
        if counts["critical"]:
            return ("The application is at **HIGH RISK** of compromise. Critical vulnerabilities provide "
                    "attackers with direct paths to sensitive data or system control. Immediate remediation "
                    "is strongly recommended before continuing production operations.")
        if counts["high"]:
            return ("The application is at **SIGNIFICANT RISK**. The identified high-severity vulnerabilities "
                    "could lead to unauthorized access to sensitive functionality or data. Prompt remediation "
                    "is recommended.")
        return ("The application is at **MODERATE RISK**. While no critical or high-severity issues were "
                "identified, the existing vulnerabilities could potentially be combined or exploited under "
                "specific circumstances. These should be addressed as part of regular security maintenance.")

    @staticmethod
    def _remediation_priorities(findings: Sequence[Finding]) -> str:
        if not findings:
            return "No specific vulnerabilities to remediate based on this scan."

        urgent: List[Finding] = [f for f in findings if f.severity in (Severity.CRITICAL, Severity.HIGH)]
        if not urgent:
            return "Address the identified medium and low severity issues as part of regular security maintenance."

        immediate = "\n".join(
            f"   {i}. Fix the {f.title} vulnerability at `{f.url}`" for i, f in enumerate(urgent, 1)
        )
        return (
            "1. **Immediate Priorities:**\n"
            f"{immediate}\n\n"
            "2. **Secondary Priorities:**\n"
            "   - Address remaining medium and low severity issues\n"
            "   - Implement additional security controls to prevent similar vulnerabilities\n"
            "   - Conduct a follow-up scan after remediation"
        )
