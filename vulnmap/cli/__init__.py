# vulnmap/cli/__init__.py
from .main import cli, main

__all__ = ["cli", "main"]
