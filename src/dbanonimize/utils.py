"""Utility functions for dbanonimize.

This module provides the timing and formatting helpers used to report
progress while tables are being anonymized.
"""

import time
from typing import Optional

import psutil


def format_time(milliseconds: float) -> str:
    """Format a duration for humans.

    Args:
        milliseconds: Duration in milliseconds.

    Returns:
        The formatted duration.

    Example:
        >>> format_time(850)
        '850 ms'
        >>> format_time(12345)
        '12.3 s'
        >>> format_time(125000)
        '2 m 5 s'
    """
    if milliseconds < 1000:
        return f"{milliseconds:.0f} ms"

    seconds = milliseconds / 1000
    if seconds < 60:
        return f"{seconds:.1f} s"

    minutes, seconds = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes} m {seconds} s"

    hours, minutes = divmod(minutes, 60)
    return f"{hours} h {minutes} m {seconds} s"


def format_memory(size: int) -> str:
    """Format a byte count using binary units.

    Example:
        >>> format_memory(13107200)
        '12.5 MiB'
    """
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            break
        value /= 1024

    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.1f} {unit}"


def resident_memory() -> int:
    """Return the resident set size of the current process, in bytes."""
    return psutil.Process().memory_info().rss


class Timer:
    """Monotonic wall timer used for progress lines.

    Example:
        >>> timer = Timer()
        >>> # ... work ...
        >>> timer.format()
        'time: 12 ms, mem: 48.2 MiB'
    """

    def __init__(self):
        self._start = time.perf_counter_ns()

    def elapsed_ms(self) -> float:
        return (time.perf_counter_ns() - self._start) / 1e6

    def format(self, memory: Optional[int] = None) -> str:
        if memory is None:
            memory = resident_memory()
        return f"time: {format_time(self.elapsed_ms())}, mem: {format_memory(memory)}"
