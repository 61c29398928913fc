"""
Timing utilities.

Helper functions for time-related operations.
"""

import threading
from typing import Any, Callable

Scheduler = Callable[[float, Callable[[], None]], Any]


def timer_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """
    Run a callback once after a delay on a daemon timer thread.

    Args:
        delay: Delay in seconds
        callback: Function to call

    Returns:
        The started timer (cancel() stops it if it has not fired yet)
    """
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


def format_uptime(seconds: float) -> str:
    """
    Format uptime in human-readable format.

    Args:
        seconds: Uptime in seconds

    Returns:
        Formatted string (e.g., "1d 2h 30m 45s")
    """
    seconds = int(seconds)

    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    parts = []
    if days > 0:
        parts.append(f'{days}d')
    if hours > 0:
        parts.append(f'{hours}h')
    if minutes > 0:
        parts.append(f'{minutes}m')
    parts.append(f'{secs}s')

    return ' '.join(parts)
