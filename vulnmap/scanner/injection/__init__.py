# vulnmap/scanner/injection/__init__.py
from .sqli import SQLInjectionScanner

__all__ = ['SQLInjectionScanner']
