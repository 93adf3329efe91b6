"""Satellite RF channel propagation engine."""

__version__ = "1.0.0"
