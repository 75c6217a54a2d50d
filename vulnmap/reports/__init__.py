# vulnmap/reports/__init__.py
from .aggregator import ScanResult, aggregate, count_by_severity
from .generator import ReportGenerator, default_report_filename
from .narrative import NarrativeGenerator, NarrativeReport

__all__ = [
    'ScanResult',
    'aggregate',
    'count_by_severity',
    'ReportGenerator',
    'default_report_filename',
    'NarrativeGenerator',
    'NarrativeReport',
]
