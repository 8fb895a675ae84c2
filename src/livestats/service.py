"""Optional FastAPI service exposing a StatsRegistry over HTTP.

Install with `pip install livestats[server]` to enable.
This keeps the core library dependency-light.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

try:  # pragma: no cover - optional dependency
    from fastapi import FastAPI, HTTPException
    from pydantic import BaseModel
except Exception as exc:  # noqa: BLE001
    raise RuntimeError(
        "FastAPI not installed. Install with `pip install livestats[server]` to use the service."  # noqa: E501
    ) from exc

from . import __version__
from .metrics import registry_metrics
from .registry import StatsRegistry
from .snapshot import Stats


class ObserveRequest(BaseModel):
    key: str = "value"
    value: float


class TimingRequest(BaseModel):
    key: str
    nanos: int


class StatsResponse(BaseModel):
    name: str
    n: int
    decayed_n: float
    decays: int
    min: float
    max: float
    decayed_min: float
    decayed_max: float
    mean: Optional[float] = None
    variance: Optional[float] = None
    skewness: Optional[float] = None
    kurtosis: Optional[float] = None
    quantiles: Dict[str, float]


def _response(stats: Stats) -> StatsResponse:
    return StatsResponse(**stats.to_dict())


def build_app(registry: Optional[StatsRegistry] = None) -> FastAPI:
    if registry is None:
        registry = StatsRegistry()
    app = FastAPI(title="LiveStats Service", version=__version__)
    # LiveStats is safe for concurrent writers and readers; no service-level lock.

    @app.get("/healthz")
    def health() -> dict[str, str]:  # pragma: no cover - trivial
        return {"status": "ok"}

    @app.post("/observe")
    def observe(req: ObserveRequest) -> dict[str, str]:
        registry.live(req.key).add(req.value)
        return {"status": "observed"}

    @app.post("/timing")
    def timing(req: TimingRequest) -> dict[str, str]:
        registry.put(req.key, req.nanos)
        return {"status": "recorded"}

    @app.get("/stats", response_model=List[StatsResponse])
    def all_stats() -> List[StatsResponse]:
        return [_response(s) for s in registry.get()]

    @app.get("/stats/{key:path}", response_model=StatsResponse)
    def one_stats(key: str) -> StatsResponse:
        found = registry.get(key)
        if not found:
            raise HTTPException(status_code=404, detail=f"no stats for {key!r}")
        return _response(found[0])

    @app.post("/consume", response_model=List[StatsResponse])
    def consume() -> List[StatsResponse]:
        return [_response(s) for s in registry.consume()]

    @app.get("/metrics")
    def metrics() -> Dict[str, Any]:
        return registry_metrics(registry)

    return app


__all__ = ["build_app"]
