"""Sequence lock: exclusive writers, optimistic readers.

Writers serialise on a mutex and bump a sequence counter on entry and on exit,
so the counter is odd exactly while a write is in progress. Readers take a
stamp, read without locking, then validate that the counter did not move. A
failed validation falls back to reading under the writer mutex, which only
waits for the current (bounded) critical section.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

T = TypeVar("T")


class SeqLock:
    __slots__ = ("_sequence", "_mutex", "fallbacks")

    def __init__(self) -> None:
        self._sequence = 0
        self._mutex = threading.Lock()
        # Reads that had to retry under the mutex (instrumentation only)
        self.fallbacks = 0

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._mutex:
            self._sequence += 1
            try:
                yield
            finally:
                self._sequence += 1

    def stamp(self) -> int:
        """Return a stamp for an optimistic read, or 0 while a writer is active."""
        sequence = self._sequence
        return 0 if sequence & 1 else sequence + 1

    def validate(self, stamp: int) -> bool:
        return stamp != 0 and self._sequence == stamp - 1

    def read(self, reader: Callable[[], T]) -> T:
        """Run ``reader`` optimistically, retrying under the mutex if a write interfered.

        An exception raised by an invalidated optimistic attempt came from torn
        state and is discarded; one raised by a validated read propagates.
        """
        stamp = self.stamp()
        if stamp:
            try:
                result = reader()
            except Exception:
                if self.validate(stamp):
                    raise
            else:
                if self.validate(stamp):
                    return result
        with self._mutex:
            self.fallbacks += 1
            return reader()

    @property
    def sequence(self) -> int:
        return self._sequence


__all__ = ["SeqLock"]
