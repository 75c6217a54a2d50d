from .policy import (
    DEFAULT_SCORE_POLICY,
    DEFAULT_SEVERITY_POLICY,
    ScoreBand,
    ScorePolicy,
    SeverityPolicy,
)
from .scan_profiles import (
    COMPREHENSIVE_SCAN_CONFIG,
    PRODUCTION_SITE_CONFIG,
    QUICK_SCAN_CONFIG,
    STANDARD_SCAN_CONFIG,
    CrawlConfig,
    HttpConfig,
    ProbeConfig,
    ScanConfig,
    build_custom_config,
    get_profile,
)

__all__ = [
    'CrawlConfig',
    'HttpConfig',
    'ProbeConfig',
    'ScanConfig',
    'QUICK_SCAN_CONFIG',
    'STANDARD_SCAN_CONFIG',
    'COMPREHENSIVE_SCAN_CONFIG',
    'PRODUCTION_SITE_CONFIG',
    'get_profile',
    'build_custom_config',
    'SeverityPolicy',
    'ScoreBand',
    'ScorePolicy',
    'DEFAULT_SEVERITY_POLICY',
    'DEFAULT_SCORE_POLICY',
]
