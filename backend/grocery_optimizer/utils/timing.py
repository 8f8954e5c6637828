"""Timing spans for the optimizer pipeline steps."""

import time
from contextlib import contextmanager
from typing import Iterator

from grocery_optimizer.logging import get_logger

logger = get_logger(__name__)

# Prefix for all timing logs so they stand out and are easy to grep
_TIMING_PREFIX = "[TIMING]"


def format_duration(ms: int) -> str:
    """Return human-readable duration: e.g. 12500 -> '12.5s', 750 -> '750ms'."""
    if ms >= 1000:
        return f"{ms / 1000:.1f}s"
    return f"{ms}ms"


class Span:
    """Elapsed-time holder yielded by time_span; readable while the block is still running."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._start = time.perf_counter()
        self._end: float | None = None

    @property
    def elapsed_ms(self) -> int:
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)

    def close(self) -> int:
        if self._end is None:
            self._end = time.perf_counter()
        return self.elapsed_ms


@contextmanager
def time_span(name: str, **extra: object) -> Iterator[Span]:
    """Log how long the block took, with optional extra key=value fields."""
    span = Span(name)
    try:
        yield span
    finally:
        elapsed = span.close()
        parts = [f"elapsed_ms={elapsed}", f"({format_duration(elapsed)})"] + [
            f"{k}={v}" for k, v in extra.items()
        ]
        logger.info("%s %s %s", _TIMING_PREFIX, name, " ".join(parts))
