from __future__ import annotations

import json
import logging
import math
import random
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from .config import DEFAULT_QUANTILES, DecayConfig
from .logutil import get_logger
from .quantile import QuantileEstimator, _divide
from .seqlock import SeqLock

_log = get_logger()


class LiveStats:
    """
    Streaming summary statistics over an unbounded series of floats.

    Tracks count, min/max, mean, variance, skewness, kurtosis and any number of
    P² quantiles without storing observations. Optional exponential decay
    (by time, by count or on demand) biases every decayable statistic toward
    recent data. Safe for concurrent writers; readers never block writers.

    Central moments use a single-pass update against the mean *after* the new
    value is folded in: delta = x - sum/n; m2 += delta^2; m3 += delta^3;
    m4 += delta^4. This is deliberately not the textbook Welford recurrence.
    """

    SNAPSHOT_VERSION = 1

    def __init__(
        self,
        decay: DecayConfig = DecayConfig.NEVER,
        quantiles: Iterable[float] = DEFAULT_QUANTILES,
        *,
        full_stats_probability: float = 1.0,
        clock: Callable[[], int] = time.monotonic_ns,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.decay_config = decay
        tiles = tuple(dict.fromkeys(float(q) for q in quantiles)) or DEFAULT_QUANTILES
        self._quantiles: Tuple[QuantileEstimator, ...] = tuple(QuantileEstimator(q) for q in tiles)
        # Chance that a sample feeds moments and quantiles; min/max/count always see it
        self.full_stats_probability = full_stats_probability
        self._random = (rng or random.Random()).random
        self._clock = clock
        self._start_ns = clock()
        self._period_ns = max(1, decay.period_ns)
        self._lock = SeqLock()
        self._count = 0
        self._decayed_count = 0.0
        self._sum = 0.0
        self._m2 = 0.0
        self._m3 = 0.0
        self._m4 = 0.0
        self._min = math.inf
        self._max = -math.inf
        self._decayed_min = math.inf
        self._decayed_max = -math.inf
        self._decay_count = 0

    def __call__(self, value: float) -> bool:
        return self.add(value)

    def _sampled(self) -> bool:
        p = self.full_stats_probability
        if p >= 1:
            return True
        if p <= 0:
            return False
        return self._random() < p

    def add(self, value: float) -> bool:
        """Record one observation; returns whether it fed the full statistics."""
        value = float(value)
        self._decay_maybe()
        sampled = self._sampled()
        with self._lock.write():
            if value < self._min:
                self._min = value
            if value > self._max:
                self._max = value
            if value < self._decayed_min:
                self._decayed_min = value
            if value > self._decayed_max:
                self._decayed_max = value
            self._count += 1
            if sampled:
                self._decayed_count += 1
                self._sum += value
                delta = value - self._sum / self._decayed_count
                delta2 = delta * delta
                self._m2 += delta2
                delta3 = delta2 * delta
                self._m3 += delta3
                self._m4 += delta3 * delta
            target_min = self._decayed_min
            target_max = self._decayed_max
        if sampled:
            for estimator in self._quantiles:
                estimator.add(value, target_min, target_max)
        return sampled

    # Decay -----------------------------------------------------------------

    def _decay_maybe(self) -> None:
        cfg = self.decay_config
        if not cfg.enabled:
            return
        if cfg.every:
            # Steps owed for the observations recorded so far, this one excluded
            self._decay_to(self._count // cfg.every)
        elif cfg.period:
            self.decay_by_time()

    def decay_by_time(self) -> None:
        """Apply every decay period that has elapsed since construction."""
        cfg = self.decay_config
        if not cfg.enabled or not cfg.period:
            return
        self._decay_to((self._clock() - self._start_ns) // self._period_ns)

    def decay(self) -> None:
        """Apply one decay step now (no-op when decay is disabled)."""
        if self.decay_config.enabled:
            self._decay_to(None)

    def _decay_to(self, expected: Optional[int]) -> None:
        if expected is not None and expected <= self._lock.read(lambda: self._decay_count):
            return
        multiplier = 1.0
        with self._lock.write():
            target = self._decay_count + 1 if expected is None else expected
            steps = target - self._decay_count
            if steps > 0:
                multiplier = self.decay_config.multiplier ** steps
                self._sum *= multiplier
                self._decayed_count *= multiplier
                self._m2 *= multiplier
                self._m3 *= multiplier
                self._m4 *= multiplier
                if self._count != 0:
                    # Scale the decayed range by the multiplier, closing in from both ends
                    distance = (1 - multiplier) * (self._decayed_max - self._decayed_min)
                    self._decayed_min += distance / 2
                    self._decayed_max -= distance / 2
                self._decay_count = target
        if multiplier == 1.0:
            return
        if _log.isEnabledFor(logging.DEBUG):
            _log.debug("decayed %d step(s) to decay_count=%d (multiplier %.6g)", steps, target, multiplier)
        for estimator in self._quantiles:
            estimator.decay(multiplier)

    # Accessors -------------------------------------------------------------

    def quantiles(self) -> Dict[float, float]:
        """Return {percentile: estimate} in configured order."""
        return {estimator.percentile: estimator.quantile() for estimator in self._quantiles}

    @property
    def estimators(self) -> Tuple[QuantileEstimator, ...]:
        return self._quantiles

    @property
    def percentiles(self) -> Tuple[float, ...]:
        return tuple(estimator.percentile for estimator in self._quantiles)

    def num(self) -> int:
        return self._count

    def decayed_num(self) -> float:
        return self._lock.read(lambda: self._decayed_count)

    def decay_count(self) -> int:
        return self._lock.read(lambda: self._decay_count)

    def minimum(self) -> float:
        return self._lock.read(lambda: self._min)

    def maximum(self) -> float:
        return self._lock.read(lambda: self._max)

    def decayed_minimum(self) -> float:
        return self._lock.read(lambda: self._decayed_min)

    def decayed_maximum(self) -> float:
        return self._lock.read(lambda: self._decayed_max)

    def mean(self) -> float:
        return self._lock.read(lambda: _divide(self._sum, self._decayed_count))

    def variance(self) -> float:
        return self._lock.read(lambda: _divide(self._m2, self._decayed_count))

    def skewness(self) -> float:
        return self._lock.read(self._read_skewness)

    def _read_skewness(self) -> float:
        # u3 / u2^(3/2) == m3 * sqrt(n/m2) / m2
        if self._m3 == 0:
            return 0.0
        return _divide(self._m3 * math.sqrt(_divide(self._decayed_count, self._m2)), self._m2)

    def kurtosis(self) -> float:
        return self._lock.read(self._read_kurtosis)

    def _read_kurtosis(self) -> float:
        # u4 / u2^2 - 3 == m4 * n / m2^2 - 3
        if self._m4 == 0:
            return 0.0
        return _divide(self._m4 * self._decayed_count, self._m2 * self._m2) - 3

    def __repr__(self) -> str:
        return (
            f"LiveStats(n={self.num()}, mean={self.mean():.6g}, min={self.minimum():.6g}, "
            f"max={self.maximum():.6g}, quantiles={self.quantiles()!r}, decay={self.decay_config!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LiveStats):
            return NotImplemented
        return self.snapshot() == other.snapshot()

    __hash__ = None  # type: ignore[assignment]

    # Persistence helpers -------------------------------------------------

    def _read_accumulators(self) -> Dict[str, Any]:
        return {
            "count": self._count,
            "decayed_count": self._decayed_count,
            "sum": self._sum,
            "central_moment_sum2": self._m2,
            "central_moment_sum3": self._m3,
            "central_moment_sum4": self._m4,
            "min": self._min,
            "max": self._max,
            "decayed_min": self._decayed_min,
            "decayed_max": self._decayed_max,
            "decay_count": self._decay_count,
        }

    def snapshot(self) -> Dict[str, Any]:
        """Return a JSON-serialisable snapshot of the current state."""
        snap: Dict[str, Any] = {
            "version": self.SNAPSHOT_VERSION,
            "decay": self.decay_config.to_dict(),
            "full_stats_probability": self.full_stats_probability,
        }
        snap.update(self._lock.read(self._read_accumulators))
        snap["quantiles"] = [estimator.snapshot() for estimator in self._quantiles]
        return snap

    def _apply_snapshot(self, snap: Mapping[str, Any]) -> None:
        with self._lock.write():
            self._count = int(snap.get("count", 0))
            self._decayed_count = float(snap.get("decayed_count", 0.0))
            self._sum = float(snap.get("sum", 0.0))
            self._m2 = float(snap.get("central_moment_sum2", 0.0))
            self._m3 = float(snap.get("central_moment_sum3", 0.0))
            self._m4 = float(snap.get("central_moment_sum4", 0.0))
            self._min = float(snap.get("min", math.inf))
            self._max = float(snap.get("max", -math.inf))
            self._decayed_min = float(snap.get("decayed_min", math.inf))
            self._decayed_max = float(snap.get("decayed_max", -math.inf))
            self._decay_count = int(snap.get("decay_count", 0))
            # Restart the decay clock so no steps are owed at restore time
            self._start_ns = self._clock() - self._decay_count * self._period_ns
        estimators = tuple(QuantileEstimator.from_snapshot(q) for q in snap.get("quantiles") or ())
        # A snapshot without estimators keeps the ones built at construction
        if estimators:
            self._quantiles = estimators

    def save(self, path: str | Path) -> Path:
        """Persist current state to disk as JSON."""
        path_obj = Path(path)
        path_obj.parent.mkdir(parents=True, exist_ok=True)
        with path_obj.open("w", encoding="utf-8") as handle:
            json.dump(self.snapshot(), handle, indent=2)
        return path_obj

    @classmethod
    def from_snapshot(
        cls,
        snap: Mapping[str, Any],
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> "LiveStats":
        decay = DecayConfig(**(snap.get("decay") or {}))
        percentiles = [q["percentile"] for q in snap.get("quantiles", [])]
        stats = cls(
            decay,
            percentiles or DEFAULT_QUANTILES,
            full_stats_probability=float(snap.get("full_stats_probability", 1.0)),
            clock=clock,
        )
        stats._apply_snapshot(snap)
        return stats

    @classmethod
    def load(cls, path: str | Path, clock: Callable[[], int] = time.monotonic_ns) -> "LiveStats":
        """Load state from disk."""
        path_obj = Path(path)
        with path_obj.open("r", encoding="utf-8") as handle:
            snap = json.load(handle)
        return cls.from_snapshot(snap, clock=clock)


__all__ = ["LiveStats"]
