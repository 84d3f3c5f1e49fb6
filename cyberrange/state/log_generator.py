# cyberrange/state/log_generator.py
"""Range event log entry factory."""

import random
import string
from datetime import datetime, timezone

from cyberrange.state.simulation_state import LogEntry, LogSeverity

__all__ = ["generate_log", "iso_timestamp"]

_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_LENGTH = 9


def iso_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def generate_log(
    severity: LogSeverity,
    source: str,
    dest: str,
    event_id: str,
    message: str,
    entry_id: str | None = None,
) -> LogEntry:
    """Create a timestamped range log entry.

    The caller appends the entry to the state and broadcasts it.

    Args:
        severity: INFO, ALERT or CRITICAL
        source: Originating actor or subsystem
        dest: Target address or subsystem
        event_id: Event code
        message: Human-readable text
        entry_id: Fixed id (a random 9-character token if omitted)

    Returns:
        New LogEntry
    """
    return LogEntry(
        timestamp=iso_timestamp(),
        type=LogSeverity(severity),
        source=str(source),
        dest=str(dest),
        event_id=str(event_id),
        message=str(message),
        id=entry_id or "".join(random.choices(_ID_ALPHABET, k=_ID_LENGTH)),
    )
