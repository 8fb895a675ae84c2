import json
import math
import random

from livestats import DecayConfig, LiveStats, Stats


def _populated(decay=DecayConfig.NEVER, n=500, seed=0):
    stats = LiveStats(decay, quantiles=(0.5, 0.9, 0.99))
    rng = random.Random(seed)
    for _ in range(n):
        stats.add(rng.lognormvariate(3, 1))
    return stats


def test_save_load_round_trip(tmp_path):
    stats = _populated()
    path = stats.save(tmp_path / "nested" / "stats.json")
    assert path.exists()
    restored = LiveStats.load(path)
    assert restored == stats
    assert restored.quantiles() == stats.quantiles()
    assert restored.mean() == stats.mean()

    # Both keep evolving identically
    rng = random.Random(1)
    for _ in range(200):
        v = rng.random() * 50
        stats.add(v)
        restored.add(v)
    assert restored == stats


def test_snapshot_is_plain_json():
    stats = LiveStats(DecayConfig.manual(0.5))
    snap = json.loads(json.dumps(LiveStats().snapshot()))
    assert snap["count"] == 0
    assert snap["min"] == math.inf
    stats.add(2.0)
    stats.decay()
    snap = json.loads(json.dumps(stats.snapshot()))
    assert snap["decay"] == {"multiplier": 0.5, "period": 0.0, "every": 0}
    assert snap["decay_count"] == 1
    assert LiveStats.from_snapshot(snap) == stats


def test_restored_time_decay_owes_no_steps():
    class Clock:
        now = 0

        def __call__(self):
            return self.now

    clock = Clock()
    stats = LiveStats(DecayConfig.timed(0.5, 1.0), clock=clock)
    stats.add(4.0)
    clock.now = 3_000_000_000
    stats.decay_by_time()
    assert stats.decay_count() == 3

    later = Clock()
    later.now = 50_000_000_000
    restored = LiveStats.from_snapshot(stats.snapshot(), clock=later)
    restored.decay_by_time()
    assert restored.decay_count() == 3
    later.now += 1_000_000_000
    restored.decay_by_time()
    assert restored.decay_count() == 4


def test_unequal_after_divergence():
    a = _populated(seed=2)
    b = _populated(seed=2)
    assert a == b
    b.add(1.0)
    assert a != b


def test_stats_of_converts_nan_to_none():
    s = Stats.of("empty", LiveStats())
    assert s.n == 0
    assert s.mean is None
    assert s.variance is None
    assert s.skewness == 0.0


def test_stats_dict_round_trip():
    live = _populated(DecayConfig.manual(0.9))
    live.decay()
    s = Stats.of("latency", live)
    assert s.decays == 1
    assert s.decayed_n < s.n
    data = json.loads(json.dumps(s.to_dict()))
    assert set(data["quantiles"]) == {"0.5", "0.9", "0.99"}
    assert Stats.from_dict(data) == s


def test_stats_defaults_fill_decayed_view():
    s = Stats("x", n=3, min=1.0, max=5.0, mean=3.0, variance=1.0, skewness=0.0, kurtosis=0.0)
    assert s.decayed_n == 3.0
    assert s.decayed_min == 1.0
    assert s.decayed_max == 5.0


def test_snapshot_without_estimators_keeps_defaults():
    stats = _populated()
    snap = stats.snapshot()
    del snap["quantiles"]
    restored = LiveStats.from_snapshot(snap)
    assert restored.percentiles == (0.5,)
    assert restored.num() == stats.num()
    restored.add(1.0)
    assert len(restored.quantiles()) == 1
