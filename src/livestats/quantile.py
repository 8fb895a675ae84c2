"""Streaming quantile estimation using the P² algorithm (Jain & Chlamtac, 1985).

Five markers track a single target quantile. Memory O(1), update O(1). The
classic algorithm is generalised for exponential decay: the owning aggregate
scales the marker rank space down with ``decay`` and pulls the extreme markers
toward its decayed min/max through the bounds passed to ``add``.

Each estimator owns a SeqLock, so estimators for different percentiles accept
insertions in parallel and readers never block writers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from .seqlock import SeqLock

N_MARKERS = 5


def _divide(numerator: float, denominator: float) -> float:
    """IEEE-754 division: x/0 is a signed infinity (NaN for 0/0) instead of an exception."""
    try:
        return numerator / denominator
    except ZeroDivisionError:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)


@dataclass(eq=True)
class QuantileEstimator:
    percentile: float  # target quantile in [0,1]
    # Marker 0's ideal rank is always 1, so only markers 1..4 are tracked
    _ideal_positions: List[float] = field(default_factory=list)
    _positions: List[float] = field(default_factory=lambda: [1.0, 2.0, 3.0, 4.0, 5.0])
    _heights: List[float] = field(default_factory=lambda: [0.0] * N_MARKERS)
    _initialized: int = 0  # observations buffered, capped at N_MARKERS
    _position_deltas: Tuple[float, ...] = field(init=False, repr=False, compare=False)
    _lock: SeqLock = field(default_factory=SeqLock, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        p = self.percentile
        self._position_deltas = (p / 2, p, (1 + p) / 2, 1.0)
        if not self._ideal_positions:
            self._ideal_positions = [1 + 2 * p, 1 + 4 * p, 3 + 2 * p, 5.0]

    @property
    def initialized(self) -> bool:
        return self._initialized == N_MARKERS

    @property
    def buffered(self) -> int:
        return self._initialized

    def add(self, x: float, target_min: float, target_max: float) -> None:
        """Observe one sample; ``target_min``/``target_max`` are the owner's decayed bounds."""
        with self._lock.write():
            h = self._heights
            if self._initialized < N_MARKERS:
                h[self._initialized] = x
                self._initialized += 1
                # Keep the buffer sorted so quantile() can index it directly
                h[: self._initialized] = sorted(h[: self._initialized])
                return

            n = self._positions
            top = N_MARKERS - 1
            # Extreme markers follow the bounds, nudged by one ulp to stay strictly ordered
            if target_max > h[top - 1]:
                h[top] = target_max
            else:
                h[top] = h[top - 1] + math.ulp(h[top - 1])
            if target_min < h[1]:
                h[0] = target_min
            else:
                h[0] = h[1] - math.ulp(h[1])

            # The max marker sits above every sample
            n[top] += 1
            i = top - 1
            while i > 0 and h[i] > x:
                n[i] += 1
                i -= 1

            ideal = self._ideal_positions
            for j, delta in enumerate(self._position_deltas):
                ideal[j] += delta

            self._adjust(h, n, ideal)

    def quantile(self) -> float:
        """Return the current estimate (a buffered sample before warm-up)."""
        return self._lock.read(self._read_quantile)

    def _read_quantile(self) -> float:
        count = self._initialized
        if count < N_MARKERS:
            # Not meaningful before the first sample; callers check the owner's count
            return self._heights[min(count // 2, max(count - 1, 0))]
        return self._heights[2]

    def decay(self, multiplier: float) -> None:
        """Shrink the rank space so later samples outweigh earlier ones."""
        if multiplier == 1:
            return
        with self._lock.write():
            if self._initialized == N_MARKERS:
                for i in range(N_MARKERS - 1):
                    self._ideal_positions[i] *= multiplier
                    self._positions[i + 1] *= multiplier

    def markers(self) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
        """Return a consistent (positions, heights) copy."""
        return self._lock.read(lambda: (tuple(self._positions), tuple(self._heights)))

    @staticmethod
    def _adjust(h: List[float], n: List[float], ideal: List[float]) -> None:
        for i in range(1, N_MARKERS - 1):
            position = n[i]
            d = ideal[i - 1] - position
            if (d >= 1 and n[i + 1] > position + 1) or (d <= -1 and n[i - 1] < position - 1):
                d_sign = 1 if d > 0 else -1
                hp = QuantileEstimator._parabolic(d_sign, h[i - 1], h[i], h[i + 1], n[i - 1], position, n[i + 1])
                if h[i - 1] < hp < h[i + 1]:
                    h[i] = hp
                else:
                    # Linear fallback toward the neighbour we are moving to
                    h[i] = QuantileEstimator._linear(i, d_sign, h, n)
                n[i] = position + d_sign

    @staticmethod
    def _parabolic(d: int, h0: float, h1: float, h2: float, n0: float, n1: float, n2: float) -> float:
        below = n1 - n0
        above = n2 - n1
        lower = _divide(above - d, below) * (h1 - h0)
        upper = _divide(below + d, above) * (h2 - h1)
        return h1 + math.copysign(_divide(upper + lower, n2 - n0), d)

    @staticmethod
    def _linear(i: int, d: int, h: List[float], n: List[float]) -> float:
        return h[i] + math.copysign(_divide(h[i + d] - h[i], n[i + d] - n[i]), d)

    # Persistence helpers -------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return self._lock.read(
            lambda: {
                "percentile": self.percentile,
                "ideal_positions": list(self._ideal_positions),
                "positions": list(self._positions),
                "heights": list(self._heights),
                "initialized": self._initialized,
            }
        )

    @classmethod
    def from_snapshot(cls, snap: Mapping[str, Any]) -> "QuantileEstimator":
        return cls(
            float(snap["percentile"]),
            _ideal_positions=[float(v) for v in snap["ideal_positions"]],
            _positions=[float(v) for v in snap["positions"]],
            _heights=[float(v) for v in snap["heights"]],
            _initialized=int(snap["initialized"]),
        )


__all__ = ["QuantileEstimator", "N_MARKERS"]
