"""Simple benchmarking harness for LiveStats.

Measures insertion throughput (values/sec) with several writer threads
sharing one aggregate, and how often readers running alongside had to fall
back from an optimistic read. For deeper profiling use py-spy or scalene
externally.
"""
from __future__ import annotations

import random
import threading
import time
from typing import Dict, Iterable, List, Sequence

from .config import DecayConfig
from .stats import LiveStats

DEFAULT_BENCH_QUANTILES = (0.5, 0.9, 0.99, 0.999)


def synthetic_values(n: int, seed: int = 0) -> List[float]:
    """Log-normal latencies in nanoseconds, a typical timing shape."""
    rng = random.Random(seed)
    return [rng.lognormvariate(13.0, 0.6) for _ in range(n)]


def run(
    values: Sequence[float],
    threads: int = 4,
    quantiles: Iterable[float] = DEFAULT_BENCH_QUANTILES,
    decay: DecayConfig = DecayConfig.NEVER,
    readers: int = 1,
) -> Dict[str, float]:
    stats = LiveStats(decay, quantiles)
    threads = max(1, threads)
    chunks = [values[i::threads] for i in range(threads)]
    done = threading.Event()
    reads = [0] * readers

    def _write(chunk: Sequence[float]) -> None:
        for value in chunk:
            stats.add(value)

    def _read(slot: int) -> None:
        while not done.is_set():
            stats.mean()
            stats.quantiles()
            reads[slot] += 1

    reader_threads = [threading.Thread(target=_read, args=(i,), daemon=True) for i in range(readers)]
    writer_threads = [threading.Thread(target=_write, args=(chunk,)) for chunk in chunks]
    for t in reader_threads:
        t.start()
    start = time.perf_counter()
    for t in writer_threads:
        t.start()
    for t in writer_threads:
        t.join()
    elapsed = time.perf_counter() - start
    done.set()
    for t in reader_threads:
        t.join()

    counted = stats.num()
    vps = counted / elapsed if elapsed else float("inf")
    print(f"Recorded {counted} values from {threads} threads in {elapsed:.3f}s -> {vps:,.0f} values/sec")
    print(f"Reader passes: {sum(reads)}  locked read fallbacks: {stats._lock.fallbacks}")
    for p, q in stats.quantiles().items():
        print(f"  p{p * 100:g} = {q:,.1f}")
    return {"values": float(counted), "seconds": elapsed, "values_per_sec": vps}


__all__ = ["run", "synthetic_values"]
