# tests/test_config.py
import pytest
from pydantic import ValidationError

from vulnmap.config.policy import ScoreBand, ScorePolicy, SeverityPolicy
from vulnmap.config.scan_profiles import (
    PROFILES,
    STANDARD_SCAN_CONFIG,
    CrawlConfig,
    HttpConfig,
    build_custom_config,
    get_profile,
)


class TestScanProfiles:

    def test_profiles_available(self):
        assert set(PROFILES) == {"quick", "standard", "comprehensive", "production"}

    def test_get_profile_returns_copy(self):
        config = get_profile("Standard")
        config.crawl.max_depth = 7

        assert STANDARD_SCAN_CONFIG.crawl.max_depth == 3
        assert get_profile("standard").crawl.max_depth == 3

    def test_unknown_profile(self):
        with pytest.raises(KeyError, match="Available"):
            get_profile("aggressive")

    def test_standard_defaults(self):
        config = get_profile("standard")

        assert config.crawl.max_depth == 3
        assert config.crawl.max_pages == 50
        assert config.http.max_concurrency == 5
        assert config.http.request_timeout == 10.0
        assert config.http.verify_tls is True

    def test_custom_config_overrides_any_section(self):
        config = build_custom_config("quick", max_depth=2, requests_per_second=None, max_concurrent_modules=1)

        assert config.crawl.max_depth == 2
        assert config.http.requests_per_second is None
        assert config.probes.max_concurrent_modules == 1
        # Untouched fields keep the profile values
        assert config.crawl.max_pages == 15

    def test_custom_config_rejects_unknown_field(self):
        with pytest.raises(KeyError):
            build_custom_config("standard", max_widgets=3)

    @pytest.mark.parametrize("overrides", [
        {"max_depth": -1},
        {"max_depth": 11},
        {"max_pages": 0},
        {"max_concurrency": 0},
        {"request_timeout": 0},
        {"requests_per_second": 0},
        {"max_concurrent_modules": 7},
    ])
    def test_out_of_bounds_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            build_custom_config("standard", **overrides)

    def test_sections_validate_directly(self):
        with pytest.raises(ValidationError):
            CrawlConfig(max_retries=9)
        with pytest.raises(ValidationError):
            HttpConfig(request_timeout=500)


class TestSeverityPolicy:

    def test_defaults(self):
        policy = SeverityPolicy()

        assert policy.severity_for("sqli") == "critical"
        assert policy.severity_for("csrf") == "medium"
        assert policy.severity_for("unknown") == "medium"

    def test_context_escalation(self):
        policy = SeverityPolicy()

        assert policy.severity_for("xss") == "high"
        assert policy.severity_for("xss", "executable_context") == "critical"
        assert policy.severity_for("xss", "html_body") == "high"

    def test_custom_defaults(self):
        policy = SeverityPolicy(defaults={"csrf": "low"}, fallback="info")

        assert policy.severity_for("csrf") == "low"
        assert policy.severity_for("xss") == "info"


class TestScorePolicy:

    def test_custom_bands(self):
        policy = ScorePolicy(bands=[ScoreBand("A", "Clean", max_info=0), ScoreBand("B", "Tolerable", max_high=1)])

        assert policy.grade({"high": 1}).grade == "B"
        assert policy.grade({"high": 2}).grade == "D"
        assert policy.grade({}).label == "Clean"

    def test_numeric_score_weights(self):
        policy = ScorePolicy(weights={"critical": 50})

        assert policy.numeric_score({"critical": 1, "high": 3}) == 50
        assert policy.numeric_score({"critical": 3}) == 0
