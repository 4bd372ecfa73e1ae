from __future__ import annotations

import time


class Timer:
    """Stopwatch for the latency_ms / duration_ms fields of log events."""

    def __init__(self) -> None:
        self.start = time.monotonic()

    def ms(self) -> int:
        return int((time.monotonic() - self.start) * 1000)
