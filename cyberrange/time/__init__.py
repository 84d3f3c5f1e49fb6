# cyberrange/time/__init__.py
"""Simulation clock and the delayed transition scheduler."""
