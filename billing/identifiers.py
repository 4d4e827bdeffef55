from __future__ import annotations

import itertools
import threading
import time
from typing import Callable


class SequenceGenerator:
    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            return next(self._counter)


class TokenGenerator:
    """Opaque ids of the form ``PREFIX-<epoch ms>-<counter>``.

    The counter never resets, so two tokens minted in the same millisecond
    still differ. Callers that already own a unique sequence (the ledger's
    bill ids) pass it to ``token_for`` instead.
    """

    def __init__(
        self,
        prefix: str,
        *,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        self._prefix = prefix
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)
        self._sequence = SequenceGenerator()

    def next(self) -> str:
        return self.token_for(self._sequence.next())

    def token_for(self, seq: int) -> str:
        return f"{self._prefix}-{self._clock_ms()}-{seq:06d}"
