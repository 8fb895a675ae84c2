"""Keyed registry of LiveStats for per-operation timing.

Each string key gets its own LiveStats on first use. Timing helpers record
elapsed nanoseconds under ``<name>/success``, ``<name>/failure`` or
``<name>/error``. A process-wide registry can be installed with
``configure()``; ``instance()`` hands out a no-op registry until then, so
instrumented code never has to check whether stats are enabled.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from .config import DEFAULT_QUANTILES, DEFAULT_UNUSED_EXPIRATION, DecayConfig
from .logutil import get_logger
from .seqlock import SeqLock
from .snapshot import Stats
from .stats import LiveStats

T = TypeVar("T")
ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]

OVERHEAD_KEY = "overhead"
# Give writers that fetched an entry just before a drain time to finish (seconds)
CONSUME_GRACE = 0.001

_log = get_logger()


def _timing_key(name: str, success: bool, error: bool) -> str:
    # Error wins: collect_timing always reports success=True alongside a raise
    sub_type = "error" if error else "success" if success else "failure"
    return f"{name}/{sub_type}"


@dataclass
class _Entry:
    stats: LiveStats
    last_access: float


class StatsRegistry:
    def __init__(
        self,
        default_decay: DecayConfig = DecayConfig.NEVER,
        decay_overrides: Optional[Mapping[str, DecayConfig]] = None,
        unused_expiration: float = DEFAULT_UNUSED_EXPIRATION,
        quantiles: Iterable[float] = DEFAULT_QUANTILES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_decay = default_decay
        self.decay_overrides: Dict[str, DecayConfig] = dict(decay_overrides or {})
        self.unused_expiration = unused_expiration
        self.quantiles: Tuple[float, ...] = tuple(quantiles) or DEFAULT_QUANTILES
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._next_eviction = clock() + min(unused_expiration, 60.0)

    # Entry management ------------------------------------------------------

    def live(self, key: str) -> LiveStats:
        """Return the LiveStats for ``key``, creating it on first use."""
        now = self._clock()
        if now >= self._next_eviction:
            self._evict_expired(now)
        entry = self._entries.get(key)
        if entry is None:
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    decay = self.decay_overrides.get(key, self.default_decay)
                    entry = _Entry(LiveStats(decay, self.quantiles), now)
                    self._entries[key] = entry
                    _log.debug("created stats for %r (decay=%r)", key, decay)
        entry.last_access = now
        return entry.stats

    def _evict_expired(self, now: float) -> None:
        with self._lock:
            cutoff = now - self.unused_expiration
            expired = [key for key, entry in self._entries.items() if entry.last_access < cutoff]
            for key in expired:
                del self._entries[key]
            self._next_eviction = now + min(self.unused_expiration, 60.0)
        if expired:
            _log.debug("evicted %d unused stats: %s", len(expired), ", ".join(sorted(expired)))

    def keys(self) -> List[str]:
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # Recording -------------------------------------------------------------

    def put(self, key: str, nanos: int) -> None:
        """Record a timing of ``nanos`` under ``key``."""
        self._add_timing(key, nanos, time.perf_counter_ns())

    def complete(self, key: str, start_ns: int) -> None:
        """Record ``perf_counter_ns() - start_ns`` under ``key``."""
        end_ns = time.perf_counter_ns()
        self._add_timing(key, end_ns - start_ns, end_ns)

    def _add_timing(self, key: str, nanos: int, end_ns: int) -> None:
        self.live(key).add(nanos)
        if _log.isEnabledFor(logging.DEBUG):
            self.live(OVERHEAD_KEY).add(time.perf_counter_ns() - end_ns)

    def collect_timing(
        self,
        name: str,
        subject: Callable[..., T],
        *args: Any,
        successful: Optional[Callable[[T], bool]] = None,
        **kwargs: Any,
    ) -> T:
        """Call ``subject`` and record its duration.

        Recorded under ``name/success`` unless ``successful(result)`` is false
        (``name/failure``) or the call raises (``name/error``; the exception
        propagates). The predicate's own cost counts as overhead, not time.
        """
        start = time.perf_counter_ns()
        end = -1
        success = False
        error = False
        try:
            result = subject(*args, **kwargs)
            end = time.perf_counter_ns()
            success = True if successful is None else bool(successful(result))
            return result
        except BaseException:
            if end < 0:
                end = time.perf_counter_ns()
            error = True
            raise
        finally:
            self._add_timing(_timing_key(name, success, error), end - start, end)

    def collect_timing_with_thrown_failures(
        self,
        name: str,
        subject: Callable[..., T],
        expected: ExceptionTypes,
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Like collect_timing, but raised ``expected`` exceptions count as ``name/failure``."""
        start = time.perf_counter_ns()
        end = -1
        success = False
        error = False
        try:
            result = subject(*args, **kwargs)
            end = time.perf_counter_ns()
            success = True
            return result
        except BaseException as exc:
            end = time.perf_counter_ns()
            error = not isinstance(exc, expected)
            raise
        finally:
            self._add_timing(_timing_key(name, success, error), end - start, end)

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Time the body of a ``with`` block under ``name/success`` or ``name/error``."""
        start = time.perf_counter_ns()
        error = False
        try:
            yield
        except BaseException:
            error = True
            raise
        finally:
            self.complete(_timing_key(name, True, error), start)

    def timing_on_completion(
        self,
        name: str,
        subject: Callable[[], Any],
        successful: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """Start a future with ``subject`` and record its duration once it settles.

        Works with anything exposing ``add_done_callback`` (concurrent.futures
        and asyncio futures). Cancelled or failed futures go to ``name/error``.
        Returns the future produced by ``subject``.
        """
        start = time.perf_counter_ns()
        future = subject()

        def _done(fut: Any) -> None:
            if fut.cancelled() or fut.exception() is not None:
                self.complete(_timing_key(name, False, True), start)
                return
            end = time.perf_counter_ns()
            try:
                ok = True if successful is None else bool(successful(fut.result()))
            except Exception:
                self.complete(_timing_key(name, False, True), start)
                raise
            self._add_timing(_timing_key(name, ok, False), end - start, end)

        future.add_done_callback(_done)
        return future

    # Reading ---------------------------------------------------------------

    def get(self, *names: str) -> List[Stats]:
        """Snapshot the named stats (all when none given) without resetting them."""
        now = self._clock()
        if names:
            selected = [(name, self._entries.get(name)) for name in names]
        else:
            selected = sorted(self._entries.items())
        result = []
        for name, entry in selected:
            if entry is None:
                continue
            entry.last_access = now
            entry.stats.decay_by_time()
            result.append(Stats.of(name, entry.stats))
        return result

    def consume(self) -> List[Stats]:
        """Drain every entry and return their final snapshots, sorted by key.

        Destructive: the returned snapshots are all that remains of the data.
        """
        with self._lock:
            drained = sorted(self._entries.items())
            self._entries.clear()
        time.sleep(CONSUME_GRACE)
        result = []
        for name, entry in drained:
            entry.stats.decay_by_time()
            result.append(Stats.of(name, entry.stats))
        _log.debug("consumed %d stats", len(result))
        return result

    # Persistence helpers -------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Return a JSON-serialisable snapshot of every entry's full state."""
        return {
            "version": 1,
            "stats": {key: entry.stats.snapshot() for key, entry in sorted(self._entries.items())},
        }

    def restore(self, snap: Mapping[str, Any]) -> None:
        """Install entries from ``snapshot()`` output, replacing same-named ones."""
        now = self._clock()
        restored = {
            str(key): _Entry(LiveStats.from_snapshot(state), now)
            for key, state in (snap.get("stats") or {}).items()
        }
        with self._lock:
            self._entries.update(restored)
        _log.debug("restored %d stats", len(restored))

    def config(self) -> Dict[str, Any]:
        return {
            "default_decay": self.default_decay.to_dict(),
            "decay_overrides": {key: cfg.to_dict() for key, cfg in sorted(self.decay_overrides.items())},
            "unused_expiration": self.unused_expiration,
            "quantiles": list(self.quantiles),
        }


class NoopRegistry(StatsRegistry):
    """Registry that records nothing; stands in while stats are disabled."""

    def live(self, key: str) -> LiveStats:
        return LiveStats(self.default_decay, self.quantiles)

    def _add_timing(self, key: str, nanos: int, end_ns: int) -> None:
        pass

    def get(self, *names: str) -> List[Stats]:
        return []

    def consume(self) -> List[Stats]:
        return []

    def restore(self, snap: Mapping[str, Any]) -> None:
        pass


NOOP = NoopRegistry()

_instance_lock = SeqLock()
_instance: Optional[StatsRegistry] = None


def configure(
    quantiles: Iterable[float] = DEFAULT_QUANTILES,
    default_decay: DecayConfig = DecayConfig.NEVER,
    decay_overrides: Optional[Mapping[str, DecayConfig]] = None,
    unused_expiration: float = DEFAULT_UNUSED_EXPIRATION,
) -> StatsRegistry:
    """Install (replacing any previous) the process-wide registry and return it."""
    global _instance
    registry = StatsRegistry(default_decay, decay_overrides, unused_expiration, quantiles)
    with _instance_lock.write():
        _instance = registry
    return registry


def disable() -> None:
    global _instance
    with _instance_lock.write():
        _instance = None


def instance() -> StatsRegistry:
    registry = _instance_lock.read(lambda: _instance)
    return NOOP if registry is None else registry


__all__ = [
    "StatsRegistry",
    "NoopRegistry",
    "NOOP",
    "OVERHEAD_KEY",
    "configure",
    "disable",
    "instance",
]
