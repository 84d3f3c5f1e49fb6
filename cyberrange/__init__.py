# cyberrange/__init__.py
"""Authoritative shared-state server for a multi-operator cyber range."""

__version__ = "0.1.0"
