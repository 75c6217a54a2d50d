"""Error taxonomy for the crawl-and-scan engine.

Only input validation and total unreachability are raised to callers.
Everything below the root fetch is recorded as data (page status,
inconclusive checks) instead of being raised.
"""


class VulnMapError(Exception):
    """Base class for all engine errors"""


class InvalidURL(VulnMapError, ValueError):
    """Malformed target or link URL"""

    def __init__(self, url: str, reason: str = "invalid URL"):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url!r}")


class UnreachableTarget(VulnMapError):
    """The root URL could not be fetched, so nothing can be scanned"""

    def __init__(self, url: str, cause: str = ""):
        self.url = url
        self.cause = cause
        message = f"Target unreachable: {url}"
        if cause:
            message += f" ({cause})"
        super().__init__(message)


class GraphFrozenError(VulnMapError, RuntimeError):
    """A frozen site graph or page node was mutated"""


class NarrativeGenerationUnavailable(VulnMapError):
    """The external narrative service failed; callers get the fallback report"""
