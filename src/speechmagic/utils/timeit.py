"""
Timing Utilities for the Generation Pipeline.

The orchestrator wraps each awaited step in `timeit` and logs the
measured seconds at VERBOSE level; `Stopwatch` covers the end-to-end
latency that spans several steps.

Example:
    with timeit("synthesize") as t:
        audio = await client.synthesize(text, voice, speed)
    verbose(_LOG, "step", event="synthesize", seconds=round(t.seconds, 4))
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Dict, Optional


@dataclass
class Timing:
    """A finished measurement."""
    name: str
    seconds: float


class timeit:
    """
    Context manager for timing code blocks.

    Works around `await` expressions as well, since it only reads
    perf_counter() on enter and exit.
    """

    def __init__(self, name: str):
        self.name = name
        self._t0: Optional[float] = None
        self.timing: Optional[Timing] = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=perf_counter() - self._t0)

    @property
    def seconds(self) -> float:
        """Elapsed seconds, or -1.0 while the block is still running."""
        return self.timing.seconds if self.timing else -1.0


class Stopwatch:
    """Collects named step timings for one request."""

    def __init__(self) -> None:
        self._t0 = perf_counter()
        self.steps: Dict[str, float] = {}

    def record(self, timer: timeit) -> float:
        self.steps[timer.name] = timer.seconds
        return timer.seconds

    def elapsed(self) -> float:
        return perf_counter() - self._t0
