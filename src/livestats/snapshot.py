"""Immutable point-in-time readings of a LiveStats, for reporting.

Moments that are undefined (NaN, e.g. the mean of nothing) are carried as
``None`` so the snapshot serialises to plain JSON.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .stats import LiveStats


def _nan_to_none(value: float) -> Optional[float]:
    return None if math.isnan(value) else value


@dataclass(frozen=True)
class Stats:
    name: str
    n: int
    min: float
    max: float
    mean: Optional[float]
    variance: Optional[float]
    skewness: Optional[float]
    kurtosis: Optional[float]
    quantiles: Dict[float, float] = field(default_factory=dict)
    decays: int = 0
    decayed_n: Optional[float] = None
    decayed_min: Optional[float] = None
    decayed_max: Optional[float] = None

    def __post_init__(self) -> None:
        # Undecayed readings: the decayed view is the plain view
        if self.decayed_n is None:
            object.__setattr__(self, "decayed_n", float(self.n))
        if self.decayed_min is None:
            object.__setattr__(self, "decayed_min", self.min)
        if self.decayed_max is None:
            object.__setattr__(self, "decayed_max", self.max)

    @classmethod
    def of(cls, name: str, stats: LiveStats) -> "Stats":
        return cls(
            name=name,
            n=stats.num(),
            min=stats.minimum(),
            max=stats.maximum(),
            mean=_nan_to_none(stats.mean()),
            variance=_nan_to_none(stats.variance()),
            skewness=_nan_to_none(stats.skewness()),
            kurtosis=_nan_to_none(stats.kurtosis()),
            quantiles=dict(stats.quantiles()),
            decays=stats.decay_count(),
            decayed_n=stats.decayed_num(),
            decayed_min=stats.decayed_minimum(),
            decayed_max=stats.decayed_maximum(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "n": self.n,
            "decayed_n": self.decayed_n,
            "decays": self.decays,
            "min": self.min,
            "max": self.max,
            "decayed_min": self.decayed_min,
            "decayed_max": self.decayed_max,
            "mean": self.mean,
            "variance": self.variance,
            "skewness": self.skewness,
            "kurtosis": self.kurtosis,
            # JSON object keys must be strings
            "quantiles": {repr(p): v for p, v in self.quantiles.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Stats":
        def _opt(key: str) -> Optional[float]:
            value = data.get(key)
            return None if value is None else float(value)

        return cls(
            name=str(data["name"]),
            n=int(data["n"]),
            min=float(data["min"]),
            max=float(data["max"]),
            mean=_opt("mean"),
            variance=_opt("variance"),
            skewness=_opt("skewness"),
            kurtosis=_opt("kurtosis"),
            quantiles={float(p): float(v) for p, v in (data.get("quantiles") or {}).items()},
            decays=int(data.get("decays", 0)),
            decayed_n=_opt("decayed_n"),
            decayed_min=_opt("decayed_min"),
            decayed_max=_opt("decayed_max"),
        )


__all__ = ["Stats"]
