# vulnmap/remediation/engine.py
from typing import List, Union
from enum import Enum


# One-paragraph remediation attached to every finding of a type
REMEDIATION_SUMMARIES = {
    "xss": (
        "Implement proper output encoding for user-supplied data. Use context-specific "
        "encoding and consider a Content-Security-Policy."
    ),
    "idor": (
        "Implement proper authorization checks for all API endpoints. Use indirect references "
        "or verify user permissions before allowing access to resources."
    ),
    "sqli": (
        "Use parameterized queries or prepared statements. Never concatenate user input "
        "directly into SQL queries."
    ),
    "lfi": (
        "Validate and sanitize file paths. Use a whitelist of allowed files and avoid using "
        "user input for file operations."
    ),
    "rfi": (
        "Disable allow_url_include in PHP configuration. Validate and sanitize file paths. "
        "Use a whitelist of allowed files."
    ),
    "csrf": (
        "Implement anti-CSRF tokens for all state-changing operations. Verify the origin of "
        "requests and use SameSite cookies."
    ),
}

# Further reading attached to SARIF rules and narrative reports
REMEDIATION_REFERENCES = {
    "xss": [
        "https://cheatsheetseries.owasp.org/cheatsheets/Cross_Site_Scripting_Prevention_Cheat_Sheet.html",
        "https://cwe.mitre.org/data/definitions/79.html",
    ],
    "idor": [
        "https://cheatsheetseries.owasp.org/cheatsheets/Insecure_Direct_Object_Reference_Prevention_Cheat_Sheet.html",
        "https://cwe.mitre.org/data/definitions/639.html",
    ],
    "sqli": [
        "https://cheatsheetseries.owasp.org/cheatsheets/SQL_Injection_Prevention_Cheat_Sheet.html",
        "https://cwe.mitre.org/data/definitions/89.html",
    ],
    "lfi": [
        "https://owasp.org/www-community/attacks/Path_Traversal",
        "https://cwe.mitre.org/data/definitions/22.html",
    ],
    "rfi": [
        "https://www.php.net/manual/en/filesystem.configuration.php#ini.allow-url-include",
        "https://cwe.mitre.org/data/definitions/98.html",
    ],
    "csrf": [
        "https://cheatsheetseries.owasp.org/cheatsheets/Cross-Site_Request_Forgery_Prevention_Cheat_Sheet.html",
        "https://cwe.mitre.org/data/definitions/352.html",
    ],
}


class RemediationEngine:
    """Remediation text and references per vulnerability type"""

    @staticmethod
    def _key(vulnerability_type: Union[str, Enum]) -> str:
        return str(getattr(vulnerability_type, "value", vulnerability_type)).lower()

    def get_summary(self, vulnerability_type: Union[str, Enum]) -> str:
        """Short remediation text for a finding of this type"""
        return REMEDIATION_SUMMARIES.get(
            self._key(vulnerability_type),
            "Review the affected endpoint and validate all user-supplied input."
        )

    def get_references(self, vulnerability_type: Union[str, Enum]) -> List[str]:
        return list(REMEDIATION_REFERENCES.get(self._key(vulnerability_type), []))
