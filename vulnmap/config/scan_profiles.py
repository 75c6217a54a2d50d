"""
vulnmap - Configuration Templates

Pre-configured scan profiles for different use cases.

## How to Use

```python
from vulnmap.scanner.vuln_scanner import VulnerabilityScanner
from vulnmap.config.scan_profiles import PRODUCTION_SITE_CONFIG

scanner = VulnerabilityScanner(PRODUCTION_SITE_CONFIG)
```

## Available Profiles

- QUICK_SCAN_CONFIG - shallow crawl, short budgets
- STANDARD_SCAN_CONFIG - the defaults
- COMPREHENSIVE_SCAN_CONFIG - deep crawl, long budgets
- PRODUCTION_SITE_CONFIG - gentle on live client sites

### Custom Builder:
- build_custom_config() - Build custom configurations
"""

from typing import Optional

from pydantic import BaseModel, Field


DEFAULT_USER_AGENT = "vulnmap/1.0 (+security assessment)"


class CrawlConfig(BaseModel):
    max_depth: int = Field(default=3, ge=0, le=10, description="Maximum link depth from the root")
    max_pages: int = Field(default=50, ge=1, le=1000, description="Maximum pages to fetch")
    time_budget: float = Field(default=120.0, gt=0, description="Crawl wall-clock budget in seconds")
    max_retries: int = Field(default=2, ge=0, le=5, description="Retries on timeout or connection failure")
    retry_delay: float = Field(default=0.5, ge=0, description="Initial retry backoff in seconds")


class HttpConfig(BaseModel):
    max_concurrency: int = Field(default=5, ge=1, le=50, description="Concurrent requests in flight")
    request_timeout: float = Field(default=10.0, gt=0, le=120.0, description="Per-request timeout in seconds")
    requests_per_second: Optional[float] = Field(default=10.0, gt=0, description="Rate limit, None for unlimited")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent header")


class ProbeConfig(BaseModel):
    max_concurrent_modules: int = Field(default=3, ge=1, le=6, description="Probe modules run at once")
    time_budget: float = Field(default=300.0, gt=0, description="Scan phase wall-clock budget in seconds")
    rfi_canary_url: str = Field(default="https://www.example.com/", description="Remote resource used by the RFI probe")
    rfi_canary_signature: str = Field(default="Example Domain", description="Text that proves the canary was included")


class ScanConfig(BaseModel):
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    probes: ProbeConfig = Field(default_factory=ProbeConfig)


# ==============================================================================
# SCAN TYPE CONFIGURATIONS
# ==============================================================================

# Quick initial assessment
QUICK_SCAN_CONFIG = ScanConfig(
    crawl=CrawlConfig(max_depth=1, max_pages=15, time_budget=30),
    http=HttpConfig(max_concurrency=8, request_timeout=5, requests_per_second=20),
    probes=ProbeConfig(max_concurrent_modules=6, time_budget=60),
)

# Standard scan
STANDARD_SCAN_CONFIG = ScanConfig()

# Comprehensive deep scan
COMPREHENSIVE_SCAN_CONFIG = ScanConfig(
    crawl=CrawlConfig(max_depth=5, max_pages=200, time_budget=600),
    http=HttpConfig(max_concurrency=5, request_timeout=20, requests_per_second=10),
    probes=ProbeConfig(max_concurrent_modules=3, time_budget=1200),
)

# ==============================================================================
# PRODUCTION CONFIGURATIONS
# ==============================================================================

# For scanning client production websites (very conservative)
PRODUCTION_SITE_CONFIG = ScanConfig(
    crawl=CrawlConfig(max_depth=3, max_pages=50, time_budget=300, retry_delay=1.0),
    http=HttpConfig(max_concurrency=2, request_timeout=20, requests_per_second=2),
    probes=ProbeConfig(max_concurrent_modules=1, time_budget=900),
)


PROFILES = {
    'quick': QUICK_SCAN_CONFIG,
    'standard': STANDARD_SCAN_CONFIG,
    'comprehensive': COMPREHENSIVE_SCAN_CONFIG,
    'production': PRODUCTION_SITE_CONFIG,
}


def get_profile(name: str) -> ScanConfig:
    """Return a copy of a named profile; unknown names raise KeyError"""
    try:
        return PROFILES[name.lower()].model_copy(deep=True)
    except KeyError:
        raise KeyError(f"Unknown scan profile '{name}'. Available: {', '.join(PROFILES)}") from None


def build_custom_config(base: str = 'standard', **overrides) -> ScanConfig:
    """
    Build a custom configuration from a named profile

    Overrides are flat field names from any section, e.g.
    ``build_custom_config('quick', max_depth=2, requests_per_second=None)``.
    Values of None are kept only for fields that accept None.

    Returns:
        Validated ScanConfig

    Raises:
        KeyError: unknown base profile or field name
        pydantic.ValidationError: an override is out of bounds
    """
    config = get_profile(base)
    sections = {
        'crawl': config.crawl.model_dump(),
        'http': config.http.model_dump(),
        'probes': config.probes.model_dump(),
    }

    for field_name, value in overrides.items():
        for section in sections.values():
            if field_name in section:
                section[field_name] = value
                break
        else:
            raise KeyError(f"Unknown configuration field '{field_name}'")

    return ScanConfig(
        crawl=CrawlConfig(**sections['crawl']),
        http=HttpConfig(**sections['http']),
        probes=ProbeConfig(**sections['probes']),
    )
