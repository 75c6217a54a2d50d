# tests/test_scanners.py
from html import escape

import pytest

from vulnmap.crawler.fetcher import FetchConnectionError, Fetcher
from vulnmap.scanner.base import ProbeOptions, Severity, VulnType, collect_targets
from vulnmap.scanner.access_control.csrf import CSRFScanner, is_csrf_field
from vulnmap.scanner.access_control.idor import IDORScanner
from vulnmap.scanner.access_control.path_traversal import PathTraversalScanner, is_file_param
from vulnmap.scanner.access_control.remote_inclusion import RemoteFileInclusionScanner
from vulnmap.scanner.injection.sqli import SQLInjectionScanner
from vulnmap.scanner.xss.xss import XSSScanner
from vulnmap.scanner.vuln_scanner import VulnerabilityScanner

from tests.conftest import StubFetcher, build_graph, fast_config, form


ROOT = "http://shop.test/"

SEARCH_GRAPH = build_graph(ROOT, {
    ROOT: [form(ROOT + "search", "get", [("q", "text", ""), ("go", "submit", "Go")])],
})


def options_for(handler):
    return ProbeOptions(fetcher=StubFetcher(handler), timeout=1.0)


class TestProbeTargets:
    """Target derivation from the site graph"""

    def test_forms_first_then_query_pages(self):
        graph = build_graph(ROOT, {
            ROOT: [
                form(ROOT + "search", "get", [("q", "text", ""), ("n", "number", "")]),
                form("http://other.test/search", "get", [("q", "text", "")]),
                form(ROOT + "login", "post", [("user", "text", "")]),
            ],
            ROOT + "search?q=shoes&n=2": [],
            ROOT + "items?id=4": [],
        })

        targets = collect_targets(graph)

        assert [t.url for t in targets] == [ROOT + "search", ROOT + "items"]
        assert targets[0].baseline == {"q": "test", "n": "1"}
        assert targets[0].source == "form"
        assert targets[1].baseline == {"id": "4"}


class TestProbeOptions:

    def test_each_instance_gets_its_own_severity_policy(self):
        first = options_for(lambda url, params: "")
        second = options_for(lambda url, params: "")

        first.severity_policy.defaults["csrf"] = "low"

        assert first.severity_policy is not second.severity_policy
        assert second.severity_policy.severity_for("csrf") == "medium"
        assert second.severity_policy.severity_for("sqli") == "critical"


class TestXSSScanner:
    """Reflected XSS detection"""

    @pytest.fixture
    def scanner(self):
        return XSSScanner()

    @pytest.mark.asyncio
    async def test_detects_reflected_xss(self, scanner):
        options = options_for(lambda url, params: f"<html><body><p>Results for: {params.get('q', '')}</p></body></html>")

        findings = await scanner.run(SEARCH_GRAPH, options)

        assert len(findings) == 1
        finding = findings[0]
        assert finding.vuln_type == VulnType.XSS
        assert finding.severity == Severity.HIGH
        assert finding.url == ROOT + "search"
        assert finding.parameter == "q"
        assert "<script>" in finding.payload
        assert finding.cwe_id == "CWE-79"
        assert finding.remediation

    @pytest.mark.asyncio
    async def test_no_xss_when_encoded(self, scanner):
        options = options_for(lambda url, params: f"<p>Results for: {escape(params.get('q', ''))}</p>")

        assert await scanner.run(SEARCH_GRAPH, options) == []

    @pytest.mark.asyncio
    async def test_attribute_context_is_critical(self, scanner):
        options = options_for(lambda url, params: f'<input type="text" value="{params.get("q", "")}">')

        findings = await scanner.run(SEARCH_GRAPH, options)

        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL
        assert "attribute_double" in findings[0].evidence

    @pytest.mark.asyncio
    async def test_network_failure_is_inconclusive(self, scanner):
        def handler(url, params):
            raise FetchConnectionError(url, "connection reset")

        findings = await scanner.run(SEARCH_GRAPH, options_for(handler))

        assert findings == []
        assert len(scanner.inconclusive) == 1
        assert scanner.inconclusive[0].module == "xss"
        assert scanner.inconclusive[0].parameter == "q"

    def test_determine_context(self, scanner):
        canary = scanner.XSS_CANARY
        assert scanner._determine_context(f"<p>{canary}</p>", canary) == "html_body"
        assert scanner._determine_context(f"<script>var x = '{canary}';</script>", canary) == "javascript"
        assert scanner._determine_context(f"<a href=\"{canary}\">", canary) == "url_attribute"
        assert scanner._determine_context(f"<div onclick=\"go({canary})\">", canary) == "event_handler"
        assert scanner._determine_context(f"<input value='{canary}'>", canary) == "attribute_single"
        assert scanner._determine_context(f"<!-- {canary} -->", canary) == "comment"


class TestCSRFScanner:
    """Structural anti-CSRF token check"""

    @pytest.mark.parametrize("name,expected", [
        ("csrf_token", True),
        ("authenticity_token", True),
        ("csrfmiddlewaretoken", True),
        ("__RequestVerificationToken", True),
        ("username", False),
        ("email", False),
    ])
    def test_is_csrf_field(self, name, expected):
        assert is_csrf_field(name) is expected

    @pytest.mark.asyncio
    async def test_post_form_without_token(self):
        contact = ROOT + "contact"
        graph = build_graph(ROOT, {
            ROOT: [],
            contact: [form(contact, "post", [("name", "text", ""), ("message", "textarea", "")])],
            ROOT + "account": [form(ROOT + "account", "post", [
                ("csrf_token", "hidden", "abc"), ("display_name", "text", ""),
            ])],
        })

        findings = await CSRFScanner().run(graph, options_for(lambda url, params: ""))

        assert len(findings) == 1
        assert findings[0].severity == Severity.MEDIUM
        assert findings[0].url == contact
        assert findings[0].vuln_type == VulnType.CSRF

    @pytest.mark.asyncio
    async def test_visible_token_field_does_not_count(self):
        graph = build_graph(ROOT, {
            ROOT: [form(ROOT + "save", "post", [("csrf_token", "text", "")])],
        })

        findings = await CSRFScanner().run(graph, options_for(lambda url, params: ""))

        assert len(findings) == 1

    @pytest.mark.asyncio
    async def test_shared_form_reported_once(self):
        newsletter = form(ROOT + "subscribe", "post", [("email", "email", "")])
        graph = build_graph(ROOT, {ROOT: [newsletter], ROOT + "about": [newsletter]})

        findings = await CSRFScanner().run(graph, options_for(lambda url, params: ""))

        assert [f.url for f in findings] == [ROOT]


class TestSQLInjectionScanner:
    """Error-based and boolean-based detection"""

    GRAPH = build_graph(ROOT, {ROOT: [], ROOT + "items?id=1": []})

    @pytest.mark.asyncio
    async def test_detects_error_based_sqli(self):
        def handler(url, params):
            if "'" in params.get("id", ""):
                return "Error: You have an error in your SQL syntax; check the manual that corresponds to your MySQL server version"
            return "<p>Blue Mug</p>"

        findings = await SQLInjectionScanner().run(self.GRAPH, options_for(handler))

        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].parameter == "id"
        assert findings[0].payload == "1'"
        assert "mysql" in findings[0].evidence

    @pytest.mark.asyncio
    async def test_detects_boolean_based_sqli(self):
        def handler(url, params):
            value = params.get("id", "")
            if value in ("1", "1 AND 1=1"):
                return "<p>Blue Mug - in stock</p>"
            return "<p>No results</p>"

        findings = await SQLInjectionScanner().run(self.GRAPH, options_for(handler))

        assert len(findings) == 1
        assert findings[0].payload == "1 AND 1=1"
        assert "Boolean differential" in findings[0].evidence

    @pytest.mark.asyncio
    async def test_no_false_positive_on_clean_response(self):
        findings = await SQLInjectionScanner().run(
            self.GRAPH, options_for(lambda url, params: "<html><body>Welcome to our website!</body></html>")
        )
        assert findings == []

    @pytest.mark.asyncio
    async def test_error_already_in_baseline_ignored(self):
        findings = await SQLInjectionScanner().run(
            self.GRAPH, options_for(lambda url, params: "Docs: You have an error in your SQL syntax explained")
        )
        assert findings == []


class TestIDORScanner:
    """Sequential identifier probing"""

    @pytest.mark.asyncio
    async def test_detects_path_identifier(self):
        graph = build_graph(ROOT, {ROOT: [], ROOT + "users/5": [], ROOT + "users/6": []})
        options = options_for(lambda url, params: f"<h1>Profile of user {url.rsplit('/', 1)[-1]}</h1>")

        findings = await IDORScanner().run(graph, options)

        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].url == ROOT + "users/5"
        assert "users/{id}" in findings[0].evidence

    @pytest.mark.asyncio
    async def test_access_denied_is_not_exposure(self):
        graph = build_graph(ROOT, {ROOT: [], ROOT + "orders?order_id=10": []})

        def handler(url, params):
            if url.endswith("order_id=10"):
                return "<p>Order 10</p>"
            return (200, "<p>Access denied</p>")

        assert await IDORScanner().run(graph, options_for(handler)) == []


class TestFileInclusionScanners:
    """Local and remote file inclusion"""

    GRAPH = build_graph(ROOT, {ROOT: [], ROOT + "view?page=home.html": []})

    def test_is_file_param(self):
        assert is_file_param("page", "home")
        assert is_file_param("x", "docs/readme.txt")
        assert not is_file_param("q", "shoes")

    @pytest.mark.asyncio
    async def test_detects_path_traversal(self):
        def handler(url, params):
            if "etc/passwd" in params.get("page", ""):
                return "root:x:0:0:root:/root:/bin/bash\ndaemon:x:1:1:daemon:/usr/sbin:/bin/sh"
            return "<p>Home</p>"

        findings = await PathTraversalScanner().run(self.GRAPH, options_for(handler))

        assert len(findings) == 1
        assert findings[0].vuln_type == VulnType.LFI
        assert findings[0].severity == Severity.HIGH
        assert findings[0].payload == "../../../etc/passwd"

    @pytest.mark.asyncio
    async def test_detects_remote_inclusion_by_signature(self):
        def handler(url, params):
            if params.get("page", "").startswith("https://www.example.com/"):
                return "<h1>Example Domain</h1>"
            return "<p>Home</p>"

        findings = await RemoteFileInclusionScanner().run(self.GRAPH, options_for(handler))

        assert len(findings) == 1
        assert findings[0].vuln_type == VulnType.RFI
        assert findings[0].payload == "https://www.example.com/"

    @pytest.mark.asyncio
    async def test_signature_in_baseline_is_inconclusive(self):
        scanner = RemoteFileInclusionScanner()
        findings = await scanner.run(self.GRAPH, options_for(lambda url, params: "Example Domain"))

        assert findings == []
        assert [c.check for c in scanner.inconclusive] == ["canary signature"]


class TestProbeDeterminism:
    """Same graph, same findings"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("scanner_class", [
        XSSScanner, IDORScanner, SQLInjectionScanner,
        PathTraversalScanner, RemoteFileInclusionScanner, CSRFScanner,
    ])
    async def test_repeated_runs_match(self, scanner_class, base_url, http_session):
        fetcher = Fetcher(http_session, default_timeout=5)
        scanner = VulnerabilityScanner(fast_config(), fetcher=fetcher)
        graph = await scanner.crawl(base_url)
        options = ProbeOptions(fetcher=fetcher, timeout=5)

        first = await scanner_class().run(graph, options)
        second = await scanner_class().run(graph, options)

        assert len(first) == 1
        assert [f.to_dict() for f in first] == [f.to_dict() for f in second]


class TestFixtureScenarios:
    """Single-module scans of the fixture site"""

    @pytest.mark.asyncio
    async def test_search_form_yields_one_high_xss(self, base_url):
        result = await VulnerabilityScanner(fast_config()).scan(base_url, "xss")

        assert result.total_findings == 1
        finding = result.findings[0]
        assert finding.severity == Severity.HIGH
        assert finding.url == base_url + "search"
        assert "<script>" in finding.payload

    @pytest.mark.asyncio
    async def test_contact_form_yields_one_medium_csrf(self, base_url):
        result = await VulnerabilityScanner(fast_config()).scan(base_url, "csrf")

        assert result.total_findings == 1
        assert result.findings[0].severity == Severity.MEDIUM
        assert result.findings[0].url == base_url + "contact"
        assert result.score == "C"
