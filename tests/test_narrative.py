# tests/test_narrative.py
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from vulnmap.reports.narrative import NarrativeGenerator
from vulnmap.scanner.base import Finding, Severity, VulnType


FINDINGS = [
    Finding(
        vuln_type=VulnType.SQLI,
        title="SQL Injection",
        severity=Severity.CRITICAL,
        url="http://shop.test/items",
        description="Database error leaked",
        evidence="You have an error in your SQL syntax",
        payload="1'",
        remediation="Use parameterized queries.",
    ),
    Finding(
        vuln_type=VulnType.CSRF,
        title="Cross-Site Request Forgery",
        severity=Severity.MEDIUM,
        url="http://shop.test/contact",
        description="POST form without token",
        evidence="name, email, message",
    ),
]


def completion_app(status=200, payload=None):
    """Chat-completions stand-in that records request bodies"""
    received = []

    async def handler(request):
        received.append(await request.json())
        if status != 200:
            return web.Response(status=status, text="upstream error")
        return web.json_response(payload)

    app = web.Application()
    app.router.add_post("/v1/chat/completions", handler)
    return app, received


@pytest_asyncio.fixture
async def completion_server():
    servers = []

    async def start(status=200, payload=None):
        app, received = completion_app(status, payload)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server, received

    yield start
    for server in servers:
        await server.close()


class TestNarrativeGenerator:

    @pytest.mark.asyncio
    async def test_no_api_key_uses_fallback(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        generator = NarrativeGenerator()

        report = await generator.generate(FINDINGS, "http://shop.test", "comprehensive")

        assert not generator.enabled
        assert report.is_fallback
        assert report.report_text.startswith("# Security Assessment Report")

    @pytest.mark.asyncio
    async def test_service_error_uses_fallback(self, completion_server):
        server, _ = await completion_server(status=500)
        generator = NarrativeGenerator(api_key="test-key", base_url=str(server.make_url("/v1/chat/completions")))

        report = await generator.generate(FINDINGS, "http://shop.test", "comprehensive")

        assert report.is_fallback
        assert "SQL Injection (CRITICAL)" in report.report_text

    @pytest.mark.asyncio
    async def test_malformed_response_uses_fallback(self, completion_server):
        server, _ = await completion_server(payload={"choices": []})
        generator = NarrativeGenerator(api_key="test-key", base_url=str(server.make_url("/v1/chat/completions")))

        report = await generator.generate(FINDINGS, "http://shop.test", "comprehensive")

        assert report.is_fallback

    @pytest.mark.asyncio
    async def test_successful_generation(self, completion_server):
        payload = {"choices": [{"message": {"role": "assistant", "content": "# Narrative\n\nAll good."}}]}
        server, received = await completion_server(payload=payload)
        generator = NarrativeGenerator(
            api_key="test-key",
            base_url=str(server.make_url("/v1/chat/completions")),
            model="test-model"
        )

        report = await generator.generate(FINDINGS, "http://shop.test", "comprehensive")

        assert not report.is_fallback
        assert report.report_text == "# Narrative\n\nAll good."

        [body] = received
        assert body["model"] == "test-model"
        assert "Target Website: http://shop.test" in body["messages"][1]["content"]
        assert "Payload: 1'" in body["messages"][1]["content"]


class TestFallbackReport:

    def test_critical_findings_are_high_risk(self):
        text = NarrativeGenerator(api_key="unused").fallback_report(FINDINGS, "http://shop.test", "comprehensive")

        assert "**2 vulnerabilities**" in text
        assert "**HIGH RISK**" in text
        assert "Fix the SQL Injection vulnerability at `http://shop.test/items`" in text
        assert "Cross-Site Request Forgery" not in text.split("Immediate Priorities")[1]
        assert "**References:** https://cheatsheetseries.owasp.org/cheatsheets/SQL_Injection_Prevention_Cheat_Sheet.html" in text

    def test_medium_only_is_moderate_risk(self):
        text = NarrativeGenerator(api_key="unused").fallback_report(FINDINGS[1:], "http://shop.test", "csrf")

        assert "**MODERATE RISK**" in text
        assert "Address the identified medium and low severity issues" in text

    def test_no_findings(self):
        text = NarrativeGenerator(api_key="unused").fallback_report([], "http://shop.test", "xss")

        assert "No vulnerabilities were detected" in text
        assert "No specific vulnerabilities to remediate" in text
