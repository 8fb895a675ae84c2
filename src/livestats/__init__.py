"""Streaming percentiles, moments and decay for unbounded numeric series.

The version is read from the installed distribution metadata so that an
editable install or wheel reports what pyproject.toml declares; a hardcoded
fallback covers running straight from a source checkout.
"""

from __future__ import annotations

from importlib import metadata as _metadata

_FALLBACK_VERSION = "0.1.0"  # MUST match pyproject.toml [project].version

try:  # pragma: no cover - success path covered indirectly via CLI test
    __version__ = _metadata.version("livestats")
except _metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    __version__ = _FALLBACK_VERSION

from .config import DEFAULT_QUANTILES, DecayConfig, DecayConfigError  # noqa: E402
from .quantile import QuantileEstimator  # noqa: E402
from .registry import StatsRegistry, configure, disable, instance  # noqa: E402
from .seqlock import SeqLock  # noqa: E402
from .snapshot import Stats  # noqa: E402
from .stats import LiveStats  # noqa: E402

__all__ = [
    "__version__",
    "DEFAULT_QUANTILES",
    "DecayConfig",
    "DecayConfigError",
    "LiveStats",
    "QuantileEstimator",
    "SeqLock",
    "Stats",
    "StatsRegistry",
    "configure",
    "disable",
    "instance",
]
