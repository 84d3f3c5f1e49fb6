# cyberrange/control/__init__.py
"""Operator actions, scenarios and the range engine that owns the state."""
