"""
Shared utilities for texraster.

Common functionality used across contexts:
- Logger setup with provenance
- Compile event logging
- Timestamps
"""

from texraster.utils.timestamp import format_timestamp, now, now_exact

__all__ = ["format_timestamp", "now", "now_exact"]
