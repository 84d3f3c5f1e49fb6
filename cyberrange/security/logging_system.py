# cyberrange/security/logging_system.py
"""
Structured logging system for the cyber range server.

Provides:
- Console logging prefixed with simulation time
- Rotating JSON log files
- Event classification (severity, category)
- In-memory audit trail of operator and scenario activity

This is the operator-facing server log, separate from the range event
log that is broadcast to observers as part of the simulation state.
"""

import asyncio
import json
import logging
import logging.handlers
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from cyberrange.time.simulation_clock import SimulationClock

__all__ = [
    "EventSeverity",
    "EventCategory",
    "AuditRecord",
    "SimTimeFormatter",
    "JSONFormatter",
    "RangeLogger",
    "configure_logging",
    "get_logger",
]

# ----------------------------------------------------------------
# Event Classification
# ----------------------------------------------------------------


class EventSeverity(Enum):
    """
    Server event severity levels.

    Lower number = higher severity
    """

    CRITICAL = 1  # Node compromised
    ALERT = 2  # Scenario started
    ERROR = 3  # Failed transition or connection handler
    WARNING = 4  # Dropped or malformed input
    NOTICE = 5  # Normal but significant events
    INFO = 6  # Informational messages
    DEBUG = 7  # Debug/diagnostic information


class EventCategory(Enum):
    """Server event categories."""

    SECURITY = "security"  # Compromise and scenario events
    AUDIT = "audit"  # Operator actions
    SESSION = "session"  # Connect, join, disconnect
    TRANSITION = "transition"  # Autonomous timed transitions
    SYSTEM = "system"  # Lifecycle/infrastructure events


# Map Python logging levels to severity
LOGGING_TO_SEVERITY = {
    logging.CRITICAL: EventSeverity.CRITICAL,
    logging.ERROR: EventSeverity.ERROR,
    logging.WARNING: EventSeverity.WARNING,
    logging.INFO: EventSeverity.INFO,
    logging.DEBUG: EventSeverity.DEBUG,
}

SEVERITY_TO_LOGGING = {
    EventSeverity.CRITICAL: logging.CRITICAL,
    EventSeverity.ALERT: logging.CRITICAL,
    EventSeverity.ERROR: logging.ERROR,
    EventSeverity.WARNING: logging.WARNING,
    EventSeverity.NOTICE: logging.INFO,
    EventSeverity.INFO: logging.INFO,
    EventSeverity.DEBUG: logging.DEBUG,
}

_default_clock: SimulationClock | None = None


def _sim_now() -> float:
    return _default_clock.now() if _default_clock else 0.0


# ----------------------------------------------------------------
# Structured Audit Record
# ----------------------------------------------------------------


@dataclass
class AuditRecord:
    """Structured server event."""

    simulation_time: float
    wall_time: float
    severity: EventSeverity
    category: EventCategory
    message: str

    component: str = ""
    user: str = ""
    session_id: str = ""
    node_id: str = ""

    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialisation."""
        record = {
            "simulation_time": self.simulation_time,
            "wall_time": self.wall_time,
            "severity": self.severity.name,
            "category": self.category.value,
            "message": self.message,
        }

        if self.component:
            record["component"] = self.component
        if self.user:
            record["user"] = self.user
        if self.session_id:
            record["session_id"] = self.session_id
        if self.node_id:
            record["node_id"] = self.node_id
        if self.data:
            record["data"] = self.data

        return record

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def to_human_readable(self) -> str:
        """Convert to human-readable format."""
        category_str = f"[{self.category.value}]"
        user_str = f" ({self.user})" if self.user else ""
        return f"{category_str} {self.message}{user_str}"


# ----------------------------------------------------------------
# Formatters
# ----------------------------------------------------------------


class SimTimeFormatter(logging.Formatter):
    """Format log records with simulation time prefix."""

    def __init__(self):
        super().__init__(
            fmt="[SIM:%(sim_time)8.2fs] [%(levelname)8s] %(name)s: %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format with simulation time."""
        record.sim_time = _sim_now()
        return super().format(record)


class JSONFormatter(logging.Formatter):
    """Format log records as JSON with simulation time."""

    def __init__(self, component: str = ""):
        super().__init__()
        self.component = component

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        severity = LOGGING_TO_SEVERITY.get(record.levelno, EventSeverity.INFO)

        entry = AuditRecord(
            simulation_time=_sim_now(),
            wall_time=record.created,
            severity=severity,
            category=EventCategory.SYSTEM,
            message=record.getMessage(),
            component=self.component or record.name,
        )

        if record.exc_info:
            entry.data["exception"] = self.formatException(record.exc_info)

        return entry.to_json()


# ----------------------------------------------------------------
# Range Logger
# ----------------------------------------------------------------


class RangeLogger:
    """
    Logger for cyber range components.

    Wraps Python's logging with:
    - Simulation time on every line
    - Optional rotating JSON file output
    - Event classification
    - Audit trail of operator, session and security events
    """

    _AUDITED = (EventCategory.AUDIT, EventCategory.SECURITY, EventCategory.SESSION)

    def __init__(
        self,
        name: str,
        component: str = "",
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
        max_audit_entries: int = 1000,
    ):
        """
        Initialise range logger.

        Args:
            name: Logger name (typically module name)
            component: Component name for context
            log_dir: Directory for log files (None = no file logging)
            enable_json: Enable JSON formatted logs (requires log_dir)
            enable_console: Enable console output
            max_audit_entries: Maximum audit trail entries to retain
        """
        self.name = name
        self.component = component
        self.log_dir = log_dir
        self.enable_json = enable_json

        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        self.logger.handlers.clear()

        if enable_console:
            self._add_console_handler()

        if enable_json and log_dir:
            self._add_json_handler()

        self.audit_trail: list[AuditRecord] = []
        self._audit_lock = asyncio.Lock()
        self._max_audit_entries = max_audit_entries

    def _add_console_handler(self) -> None:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(SimTimeFormatter())
        self.logger.addHandler(handler)

    def _add_json_handler(self) -> None:
        """Add JSON file handler with rotation."""
        if not self.log_dir:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.log_dir / f"{self.component or 'range'}.json.log"

        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(JSONFormatter(component=self.component))
        self.logger.addHandler(handler)

    # ----------------------------------------------------------------
    # Standard logging methods
    # ----------------------------------------------------------------

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback."""
        self.logger.exception(message, **kwargs)

    # ----------------------------------------------------------------
    # Structured logging methods
    # ----------------------------------------------------------------

    async def log_event(
        self,
        severity: EventSeverity,
        category: EventCategory,
        message: str,
        **kwargs,
    ) -> AuditRecord:
        """
        Log structured server event.

        Args:
            severity: Event severity level
            category: Event category
            message: Event message
            **kwargs: Additional context (user, session_id, node_id, data)

        Returns:
            AuditRecord that was created
        """
        component = kwargs.pop("component", self.component)

        record = AuditRecord(
            simulation_time=_sim_now(),
            wall_time=time.time(),
            severity=severity,
            category=category,
            message=message,
            component=component,
            **kwargs,
        )

        self.logger.log(
            SEVERITY_TO_LOGGING.get(severity, logging.INFO),
            record.to_human_readable(),
        )

        if category in self._AUDITED:
            async with self._audit_lock:
                self.audit_trail.append(record)
                if len(self.audit_trail) > self._max_audit_entries:
                    self.audit_trail = self.audit_trail[-self._max_audit_entries :]

        return record

    async def log_audit(
        self, message: str, user: str = "", action: str = "", result: str = "", **kwargs
    ) -> AuditRecord:
        """
        Log operator action.

        Args:
            message: Audit message
            user: Operator handle
            action: Action performed
            result: Outcome (APPLIED, IGNORED, ...)
            **kwargs: Additional context

        Returns:
            AuditRecord that was created
        """
        data = dict(kwargs.pop("data", None) or {})
        data.update({"action": action, "result": result})

        return await self.log_event(
            severity=EventSeverity.NOTICE,
            category=EventCategory.AUDIT,
            message=message,
            user=user,
            data=data,
            **kwargs,
        )

    async def log_security(
        self, message: str, severity: EventSeverity = EventSeverity.WARNING, **kwargs
    ) -> AuditRecord:
        """Log security event (scenario start, compromise)."""
        return await self.log_event(
            severity=severity,
            category=EventCategory.SECURITY,
            message=message,
            **kwargs,
        )

    # ----------------------------------------------------------------
    # Audit trail access
    # ----------------------------------------------------------------

    async def get_audit_trail(
        self,
        limit: int = 100,
        severity: EventSeverity | None = None,
        category: EventCategory | None = None,
    ) -> list[AuditRecord]:
        """
        Get audit trail entries.

        Args:
            limit: Maximum number of entries to return
            severity: Filter by severity
            category: Filter by category

        Returns:
            List of records (most recent last)
        """
        async with self._audit_lock:
            entries = self.audit_trail

            if severity:
                entries = [e for e in entries if e.severity == severity]
            if category:
                entries = [e for e in entries if e.category == category]

            return entries[-limit:]

    async def clear_audit_trail(self) -> int:
        """
        Clear audit trail.

        Returns:
            Number of entries cleared
        """
        async with self._audit_lock:
            count = len(self.audit_trail)
            self.audit_trail.clear()
            return count


# ----------------------------------------------------------------
# Global logger factory
# ----------------------------------------------------------------

_loggers: dict[str, RangeLogger] = {}
_loggers_lock = threading.Lock()
_default_log_dir: Path | None = None
_default_max_audit_entries: int | None = None


def configure_logging(
    log_dir: Path | str | None = None,
    clock: SimulationClock | None = None,
    max_audit_entries: int | None = None,
) -> None:
    """
    Configure global logging settings.

    Loggers created before this call (module-level loggers) gain a JSON
    file handler if they had none, and pick up the clock, since formatters
    read it at format time.

    Args:
        log_dir: Directory for JSON log files
        clock: Clock used for the simulation time prefix
        max_audit_entries: Audit trail bound for new loggers
    """
    global _default_log_dir, _default_clock, _default_max_audit_entries

    if log_dir:
        _default_log_dir = Path(log_dir)
        _default_log_dir.mkdir(parents=True, exist_ok=True)

        with _loggers_lock:
            for range_logger in _loggers.values():
                if range_logger.log_dir is None and range_logger.enable_json:
                    range_logger.log_dir = _default_log_dir
                    range_logger._add_json_handler()

    if clock is not None:
        _default_clock = clock

    if max_audit_entries is not None:
        _default_max_audit_entries = max_audit_entries


def get_logger(name: str, component: str = "", **kwargs) -> RangeLogger:
    """
    Get or create a range logger.

    Thread-safe logger factory.

    Args:
        name: Logger name (typically __name__)
        component: Component name for context
        **kwargs: Additional RangeLogger arguments

    Returns:
        RangeLogger instance
    """
    logger_key = f"{name}:{component}"

    with _loggers_lock:
        if logger_key not in _loggers:
            if "log_dir" not in kwargs and _default_log_dir:
                kwargs["log_dir"] = _default_log_dir
            if "max_audit_entries" not in kwargs and _default_max_audit_entries:
                kwargs["max_audit_entries"] = _default_max_audit_entries

            _loggers[logger_key] = RangeLogger(name, component, **kwargs)

        return _loggers[logger_key]
