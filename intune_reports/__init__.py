"""Intune non-compliant device reporting."""

__version__ = "1.0.0"
