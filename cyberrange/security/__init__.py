# cyberrange/security/__init__.py
"""
Security and audit logging for the range server.

Modules:
- logging_system: Structured logging with simulation time and audit trail
"""

from cyberrange.security.logging_system import (
    AuditRecord,
    EventCategory,
    EventSeverity,
    RangeLogger,
    configure_logging,
    get_logger,
)

__all__ = [
    "AuditRecord",
    "EventCategory",
    "EventSeverity",
    "RangeLogger",
    "configure_logging",
    "get_logger",
]
