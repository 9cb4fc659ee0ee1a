"""
Compile event logging utilities for texraster (Tier 2 logging).

Appends one JSON object per line to the compile events file so builds can be
audited after the fact (which documents hit the cache, which compiled, which
failed and why).

For detailed within-context logging (Tier 1), use texraster.utils.logger instead.

Usage:
    from texraster.utils.event_logging import log_compile_event

    log_compile_event(
        events_file,
        event_type="compile_completed",
        document_name="diagram",
        source="building",
        elapsed_s=3.2,
    )
"""

import json
import threading
from pathlib import Path
from typing import Dict, List, Optional

from texraster.utils.timestamp import now_exact

# Event types emitted by the build layer
EVENT_TYPES = {"cache_hit", "compile_completed", "compile_failed", "invalidated"}

_write_lock = threading.Lock()


def log_compile_event(
    events_file: Path, event_type: str, document_name: str, source: str, **extra_fields
) -> None:
    """
    Append an event to the compile event log (JSON Lines).

    Args:
        events_file: Path of the JSON Lines file (parent directories are created)
        event_type: One of EVENT_TYPES
        document_name: Document identifier
        source: Event source (e.g., "building", "cli")
        **extra_fields: Additional event-specific fields (must be JSON serializable)
    """
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown event type: {event_type}")

    events_file = Path(events_file)
    events_file.parent.mkdir(parents=True, exist_ok=True)

    event = {
        "timestamp": now_exact(),
        "event_type": event_type,
        "document_name": document_name,
        "source": source,
        **extra_fields,
    }

    # Builds may log from worker threads
    with _write_lock:
        with open(events_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(event) + "\n")


def get_recent_events(
    events_file: Path,
    n: int = 10,
    document_name: Optional[str] = None,
    event_type: Optional[str] = None,
) -> List[Dict]:
    """
    Get the last n events from the compile event log, optionally filtered.

    Args:
        events_file: Path of the JSON Lines file
        n: Number of recent events to return (default: 10)
        document_name: Filter to only events for this document (optional)
        event_type: Filter to only events of this type (optional)

    Returns:
        List of event dicts (most recent last)
    """
    events_file = Path(events_file)
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r", encoding="utf-8") as f:
        for line in f:
            try:
                events.append(json.loads(line.strip()))
            except json.JSONDecodeError:
                # Skip malformed lines
                continue

    if document_name:
        events = [e for e in events if e.get("document_name") == document_name]

    if event_type:
        events = [e for e in events if e.get("event_type") == event_type]

    return events[-n:] if len(events) > n else events
