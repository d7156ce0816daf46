"""
Timestamp Utilities

All persisted timestamps are integer milliseconds since the Unix epoch.
"""

import time


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def window_cutoff(now: int, window_seconds: float) -> int:
    """
    Oldest timestamp still inside a window ending at ``now``.

    Examples:
        window_cutoff(100_000, 30) -> 70_000
    """
    return now - int(window_seconds * 1000)
