"""
Severity and score policy table.

Per-type default severities and the letter-grade bands are presentational
choices, so they live here as data rather than in the probe modules or the
aggregator. Keys are the plain string values of the vulnerability type and
severity enums.

```python
from vulnmap.config.policy import ScorePolicy, ScoreBand

strict = ScorePolicy(bands=[ScoreBand("A", "Excellent"), ...])
```
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional


SEVERITY_ORDER = ["critical", "high", "medium", "low", "info"]


# ==============================================================================
# DEFAULT SEVERITIES
# ==============================================================================

DEFAULT_SEVERITIES = {
    'xss': 'high',
    'idor': 'critical',
    'sqli': 'critical',
    'lfi': 'high',
    'rfi': 'high',
    'csrf': 'medium',
}

# Raised severities for specific detection contexts, keyed "<type>.<context>"
SEVERITY_ESCALATIONS = {
    'xss.executable_context': 'critical',
}


@dataclass
class SeverityPolicy:
    defaults: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SEVERITIES))
    escalations: Dict[str, str] = field(default_factory=lambda: dict(SEVERITY_ESCALATIONS))
    fallback: str = 'medium'

    def severity_for(self, vuln_type: str, context: Optional[str] = None) -> str:
        """Severity value for a vulnerability type, escalated for a context if configured"""
        if context:
            escalated = self.escalations.get(f"{vuln_type}.{context}")
            if escalated:
                return escalated
        return self.defaults.get(vuln_type, self.fallback)


# ==============================================================================
# SCORE BANDS
# ==============================================================================

@dataclass(frozen=True)
class ScoreBand:
    """A letter grade reached when every count is within its maximum (None = any)"""
    grade: str
    label: str
    max_critical: Optional[int] = 0
    max_high: Optional[int] = 0
    max_medium: Optional[int] = 0
    max_low: Optional[int] = 0
    max_info: Optional[int] = None

    def matches(self, counts: Mapping[str, int]) -> bool:
        limits = {
            'critical': self.max_critical,
            'high': self.max_high,
            'medium': self.max_medium,
            'low': self.max_low,
            'info': self.max_info,
        }
        return all(
            limit is None or counts.get(severity, 0) <= limit
            for severity, limit in limits.items()
        )


DEFAULT_SCORE_BANDS = [
    ScoreBand('A', 'Excellent', max_info=0),
    ScoreBand('B', 'Good', max_low=2),
    ScoreBand('C', 'Fair', max_medium=2, max_low=None),
]

DEFAULT_FALLBACK_BAND = ScoreBand('D', 'Needs Improvement', None, None, None, None, None)

# Points subtracted from 100 per finding of each severity
DEFAULT_SEVERITY_WEIGHTS = {
    'critical': 25,
    'high': 15,
    'medium': 7,
    'low': 2,
    'info': 0,
}


@dataclass
class ScorePolicy:
    bands: List[ScoreBand] = field(default_factory=lambda: list(DEFAULT_SCORE_BANDS))
    fallback: ScoreBand = DEFAULT_FALLBACK_BAND
    weights: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_SEVERITY_WEIGHTS))

    def grade(self, counts: Mapping[str, int]) -> ScoreBand:
        """First band whose limits all hold, else the fallback band"""
        for band in self.bands:
            if band.matches(counts):
                return band
        return self.fallback

    def numeric_score(self, counts: Mapping[str, int]) -> int:
        penalty = sum(self.weights.get(sev, 0) * count for sev, count in counts.items())
        return max(0, 100 - penalty)


DEFAULT_SEVERITY_POLICY = SeverityPolicy()
DEFAULT_SCORE_POLICY = ScorePolicy()
