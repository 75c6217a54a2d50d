# vulnmap/scanner/xss/__init__.py
from .xss import XSSScanner

__all__ = ['XSSScanner']
