# tests/test_cli.py
import json
import os
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from vulnmap import __version__
from vulnmap.cli.main import EXIT_INVALID_URL, EXIT_UNREACHABLE, cli, load_config, normalize_target
from vulnmap.errors import UnreachableTarget
from vulnmap.reports.aggregator import aggregate
from vulnmap.scanner.base import Finding, Severity, VulnType
from vulnmap.scanner.vuln_scanner import VulnerabilityScanner

from tests.conftest import build_graph, form


RESULT = aggregate(
    [
        Finding(
            vuln_type=VulnType.XSS,
            title="Reflected Cross-Site Scripting",
            severity=Severity.HIGH,
            url="http://shop.test/search",
            parameter="q",
            description="Payload reflected without encoding",
            evidence="<script>",
            id="vuln-1",
        ),
    ],
    scan_type="xss",
    target="http://shop.test",
)


@pytest.fixture
def runner():
    return CliRunner()


def patch_scan(**kwargs):
    return patch.object(VulnerabilityScanner, "scan", new=AsyncMock(**kwargs))


class TestHelpers:

    def test_normalize_target(self):
        assert normalize_target("shop.test") == "http://shop.test"
        assert normalize_target("https://shop.test") == "https://shop.test"

    def test_load_config_ignores_missing_options(self):
        config = load_config("quick", max_depth=None, max_pages=7)

        assert config.crawl.max_depth == 1
        assert config.crawl.max_pages == 7

    def test_zero_rate_limit_means_unlimited(self):
        assert load_config("standard", requests_per_second=0).http.requests_per_second is None

    def test_invalid_option_is_usage_error(self, runner):
        result = runner.invoke(cli, ["scan", "http://shop.test", "--depth", "42"])
        assert result.exit_code == 2
        assert "Invalid scan option" in result.output


class TestScanCommand:

    def test_version(self, runner):
        result = runner.invoke(cli, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_url(self, runner):
        result = runner.invoke(cli, ["scan", "ftp://shop.test/"])

        assert result.exit_code == EXIT_INVALID_URL
        assert "Invalid target URL" in result.output

    def test_unreachable_target(self, runner):
        with patch_scan(side_effect=UnreachableTarget("http://shop.test/", "connection refused")):
            result = runner.invoke(cli, ["scan", "http://shop.test"])

        assert result.exit_code == EXIT_UNREACHABLE
        assert "Target unreachable" in result.output

    def test_fail_on_threshold_met(self, runner):
        with runner.isolated_filesystem(), patch_scan(return_value=RESULT) as scan:
            result = runner.invoke(cli, ["scan", "shop.test", "--type", "xss", "--fail-on", "high", "-o", "out.json"])

            assert result.exit_code == 1
            scan.assert_awaited_once_with("http://shop.test", "xss")
            with open("out.json", encoding="utf-8") as f:
                report = json.load(f)

        assert report["score"]["grade"] == "D"
        assert report["findings"][0]["id"] == "vuln-1"

    def test_default_threshold_passes_without_critical(self, runner):
        with runner.isolated_filesystem(), patch_scan(return_value=RESULT):
            result = runner.invoke(cli, ["scan", "http://shop.test", "-f", "sarif"])

            assert result.exit_code == 0
            [written] = os.listdir(".")

        assert written.startswith("security-scan-shop.test-")
        assert written.endswith(".sarif")
        assert "vuln-1" in result.output

    def test_narrative_report_written(self, runner, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        with runner.isolated_filesystem(), patch_scan(return_value=RESULT):
            result = runner.invoke(cli, ["scan", "http://shop.test", "-o", "out.json", "-r", "report.md"])

            assert result.exit_code == 0
            with open("report.md", encoding="utf-8") as f:
                text = f.read()

        assert text.startswith("# Security Assessment Report")
        assert "generated locally" in result.output


class TestCrawlCommand:

    def test_crawl_writes_sitemap(self, runner):
        root = "http://shop.test/"
        graph = build_graph(root, {root: [form(root + "search", inputs=[("q", "text", "")])], root + "about": []})

        with runner.isolated_filesystem(), \
                patch.object(VulnerabilityScanner, "crawl", new=AsyncMock(return_value=graph)):
            result = runner.invoke(cli, ["crawl", "http://shop.test/", "-o", "sitemap.json"])

            assert result.exit_code == 0
            with open("sitemap.json", encoding="utf-8") as f:
                sitemap = json.load(f)

        assert list(sitemap["pages"]) == [root, root + "about"]

    def test_crawl_prints_site_map(self, runner):
        root = "http://shop.test/"
        graph = build_graph(root, {root: [], root + "about": []})

        with patch.object(VulnerabilityScanner, "crawl", new=AsyncMock(return_value=graph)):
            result = runner.invoke(cli, ["crawl", "http://shop.test/"])

        assert result.exit_code == 0
        assert "Site Map (2 pages)" in result.output

    def test_crawl_unreachable(self, runner):
        with patch.object(VulnerabilityScanner, "crawl", new=AsyncMock(side_effect=UnreachableTarget("http://shop.test/"))):
            result = runner.invoke(cli, ["crawl", "http://shop.test/"])

        assert result.exit_code == EXIT_UNREACHABLE
