"""
VulnMap - asynchronous web vulnerability scanner

Crawls a target site into a site graph, runs probe modules against it
and produces a scored, ordered report.
"""

__version__ = "1.0.0"
