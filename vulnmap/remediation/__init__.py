from .engine import RemediationEngine

__all__ = ['RemediationEngine']
