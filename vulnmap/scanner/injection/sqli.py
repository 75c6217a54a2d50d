# vulnmap/scanner/injection/sqli.py
"""SQL Injection Scanner"""

import difflib
import logging
import re
from typing import List, Optional, Tuple

from ...crawler.fetcher import Document
from ...crawler.site_graph import SiteGraph
from ..base import (
    BaseScanner,
    Finding,
    OWASPCategory,
    ProbeOptions,
    ProbeParam,
    ProbeTarget,
    VulnType,
    collect_targets,
)


logger = logging.getLogger(__name__)

ID_PARAM = re.compile(r'(^|_|-)(id|uid|pid|key|no|num|cat|category|item|product|article|page)$', re.IGNORECASE)


class SQLInjectionScanner(BaseScanner):
    """Error-based and boolean-based SQL injection scanner"""

    name = "SQL Injection Scanner"
    description = "Detects SQL injection with error signatures and boolean differentials"
    vuln_type = VulnType.SQLI
    title = "SQL Injection"
    cwe_id = "CWE-89"
    owasp_category = OWASPCategory.A03_INJECTION

    # Responses at least this similar are considered the same page
    SIMILARITY_THRESHOLD = 0.95
    # Bodies longer than this are compared on their prefix
    COMPARE_LIMIT = 20000

    # (true payload, false payload, description) appended to the original value
    BOOLEAN_PAIRS = [
        (" AND 1=1", " AND 1=2", "numeric"),
        ("' AND '1'='1", "' AND '1'='2", "string"),
    ]

    # SQL Error patterns by database
    SQL_ERRORS = {
        'mysql': [
            r"SQL syntax.*MySQL",
            r"Warning.*mysqli?_",
            r"MySqlException",
            r"check the manual that corresponds to your (MySQL|MariaDB) server version",
            r"SQLSTATE\[HY000\]",
        ],
        'postgresql': [
            r"PostgreSQL.*ERROR",
            r"Warning.*\Wpg_",
            r"PG::SyntaxError",
            r"org\.postgresql\.util\.PSQLException",
            r"ERROR:\s+syntax error at or near",
        ],
        'mssql': [
            r"Driver.*SQL[\-\_\ ]*Server",
            r"OLE DB.*SQL Server",
            r"System\.Data\.SqlClient",
            r"Unclosed quotation mark after the character string",
            r"Microsoft OLE DB Provider for SQL Server",
        ],
        'oracle': [
            r"\bORA-[0-9][0-9][0-9][0-9]",
            r"quoted string not properly terminated",
            r"SQL command not properly ended",
        ],
        'sqlite': [
            r"SQLite/JDBCDriver",
            r"System\.Data\.SQLite\.SQLiteException",
            r"SQLITE_ERROR",
            r"sqlite3\.OperationalError",
            r"unrecognized token:",
        ],
        'generic': [
            r"You have an error in your SQL syntax",
            r"Syntax error in string in query expression",
            r"unexpected end of SQL command",
            r"Invalid SQL statement",
        ]
    }

    async def run(self, graph: SiteGraph, options: ProbeOptions) -> List[Finding]:
        """Scan for SQL injection vulnerabilities"""
        findings = []
        tested = set()

        for target in collect_targets(graph):
            for param in target.params:
                if not self._is_candidate(param):
                    continue
                if (target.url, param.name) in tested:
                    continue
                tested.add((target.url, param.name))

                finding = await self._test_param(options, target, param)
                if finding:
                    findings.append(finding)

        return findings

    @staticmethod
    def _is_candidate(param: ProbeParam) -> bool:
        """Numeric values, or identifier-like names"""
        if param.value.isdigit():
            return True
        return bool(ID_PARAM.search(param.name))

    async def _test_param(self, options: ProbeOptions, target: ProbeTarget,
                          param: ProbeParam) -> Optional[Finding]:
        baseline = await self.probe(options, target, target.baseline, "baseline", param.name)
        if baseline is None:
            return None

        finding = await self._test_error_based(options, target, param, baseline)
        if finding:
            return finding
        return await self._test_boolean_based(options, target, param, baseline)

    async def _test_error_based(self, options: ProbeOptions, target: ProbeTarget,
                                param: ProbeParam, baseline: Document) -> Optional[Finding]:
        """A lone quote that produces a database error the baseline lacks"""
        payload = f"{param.value}'"
        response = await self.probe(
            options, target, target.with_value(param.name, payload), "error-based", param.name
        )
        if response is None:
            return None

        detected = self._detect_sql_error(response.text, baseline.text)
        if not detected:
            return None

        db_type, error = detected
        return self.create_finding(
            severity_policy=options.severity_policy,
            url=target.url,
            parameter=param.name,
            payload=payload,
            evidence=f"Database error ({db_type}) triggered by a single quote: {error[:150]}",
            description=f"The {param.name} parameter is vulnerable to SQL injection attacks (error-based).",
        )

    async def _test_boolean_based(self, options: ProbeOptions, target: ProbeTarget,
                                  param: ProbeParam, baseline: Document) -> Optional[Finding]:
        """True condition matches the baseline, false condition diverges"""
        for true_suffix, false_suffix, variant in self.BOOLEAN_PAIRS:
            if variant == "numeric" and not param.value.isdigit():
                continue

            true_payload = f"{param.value}{true_suffix}"
            true_response = await self.probe(
                options, target, target.with_value(param.name, true_payload), "boolean true", param.name
            )
            if true_response is None or not self._similar(true_response, baseline):
                continue

            false_payload = f"{param.value}{false_suffix}"
            false_response = await self.probe(
                options, target, target.with_value(param.name, false_payload), "boolean false", param.name
            )
            if false_response is None or self._similar(false_response, baseline):
                continue

            logger.debug("[sqli] %s %s diverges on %s condition", target.url, param.name, variant)
            return self.create_finding(
                severity_policy=options.severity_policy,
                url=target.url,
                parameter=param.name,
                payload=true_payload,
                evidence=(
                    f"Boolean differential ({variant}): '{true_payload}' matches the original response "
                    f"({len(true_response.text)} bytes) while '{false_payload}' differs "
                    f"({len(false_response.text)} bytes, HTTP {false_response.status})"
                ),
                description=f"The {param.name} parameter is vulnerable to SQL injection attacks (boolean-based blind).",
            )

        return None

    def _similar(self, response: Document, baseline: Document) -> bool:
        if response.status != baseline.status:
            return False
        a = response.text[:self.COMPARE_LIMIT]
        b = baseline.text[:self.COMPARE_LIMIT]
        if a == b:
            return True
        return difflib.SequenceMatcher(None, a, b).ratio() >= self.SIMILARITY_THRESHOLD

    def _detect_sql_error(self, body: str, baseline: str) -> Optional[Tuple[str, str]]:
        """Detect SQL error patterns that are new compared to the baseline"""
        for db_type, patterns in self.SQL_ERRORS.items():
            for pattern in patterns:
                match = re.search(pattern, body, re.IGNORECASE)
                if match and not re.search(pattern, baseline, re.IGNORECASE):
                    return db_type, match.group()
        return None
