# vulnmap/reports/aggregator.py
"""Severity tallies and composite score for a set of findings"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple, Union

from ..config.policy import DEFAULT_SCORE_POLICY, ScorePolicy
from ..scanner.base import Finding, InconclusiveCheck, Severity


@dataclass(frozen=True)
class ScanResult:
    """Final, immutable output of one scan run"""
    scan_type: str
    target: str
    findings: Tuple[Finding, ...]
    severity_counts: Dict[str, int]
    score: str
    label: str
    numeric_score: int
    inconclusive: Tuple[InconclusiveCheck, ...] = field(default_factory=tuple)

    @property
    def total_findings(self) -> int:
        return len(self.findings)

    @property
    def highest_severity(self) -> Optional[Severity]:
        for severity in Severity:
            if self.severity_counts.get(severity.value):
                return severity
        return None

    def summary(self) -> dict:
        summary = {"total_findings": self.total_findings}
        summary.update(self.severity_counts)
        return summary

    def to_dict(self, timestamp: Optional[str] = None) -> dict:
        return {
            "scan_type": self.scan_type,
            "target": self.target,
            "timestamp": timestamp,
            "score": {
                "grade": self.score,
                "label": self.label,
                "numeric": self.numeric_score,
            },
            "summary": self.summary(),
            "findings": [finding.to_dict() for finding in self.findings],
            "inconclusive": [check.to_dict() for check in self.inconclusive],
        }


def count_by_severity(findings: Iterable[Finding]) -> Dict[str, int]:
    """Per-severity counts, every severity present"""
    counts = {severity.value: 0 for severity in Severity}
    for finding in findings:
        counts[finding.severity.value] += 1
    return counts


def aggregate(
    findings: Iterable[Finding],
    scan_type: Union[str, Enum],
    target: str,
    inconclusive: Iterable[InconclusiveCheck] = (),
    policy: Optional[ScorePolicy] = None
) -> ScanResult:
    """
    Build the ScanResult for a list of findings.

    Pure: findings keep their order and are never modified.
    """
    policy = policy or DEFAULT_SCORE_POLICY
    findings = tuple(findings)
    counts = count_by_severity(findings)
    band = policy.grade(counts)

    return ScanResult(
        scan_type=str(getattr(scan_type, "value", scan_type)),
        target=target,
        findings=findings,
        severity_counts=counts,
        score=band.grade,
        label=band.label,
        numeric_score=policy.numeric_score(counts),
        inconclusive=tuple(inconclusive),
    )
