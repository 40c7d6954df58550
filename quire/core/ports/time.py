"""
Time Port.

All lifecycle timestamps are UTC. The state machine and the revision
sequence read "now" only through this port so tests can pin it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Clock interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time (timezone-aware)."""
        ...
