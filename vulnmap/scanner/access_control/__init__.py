# vulnmap/scanner/access_control/__init__.py
from .idor import IDORScanner
from .path_traversal import PathTraversalScanner
from .remote_inclusion import RemoteFileInclusionScanner
from .csrf import CSRFScanner

__all__ = [
    'IDORScanner',
    'PathTraversalScanner',
    'RemoteFileInclusionScanner',
    'CSRFScanner'
    ]
