"""Metrics helper for StatsRegistry.

Provides a JSON-ready, non-destructive view of every tracked key suitable for
exposure via HTTP or logging. Reading applies any elapsed time decay but never
drains the registry.
"""
from __future__ import annotations

from typing import Any, Dict

from .registry import StatsRegistry


def registry_metrics(registry: StatsRegistry) -> Dict[str, Any]:
    snapshots = registry.get()
    return {
        "keys": len(snapshots),
        "observations": sum(s.n for s in snapshots),
        "stats": {s.name: s.to_dict() for s in snapshots},
        "config": registry.config(),
    }


__all__ = ["registry_metrics"]
