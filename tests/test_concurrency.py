import random
import threading

from livestats import DecayConfig, LiveStats

THREADS = 8
PER_THREAD = 2000


def _hammer(stats, values_for, readers=()):
    start = threading.Barrier(THREADS + len(readers))
    done = threading.Event()

    def writer(slot):
        start.wait()
        for v in values_for(slot):
            stats.add(v)

    def reader_loop(check):
        start.wait()
        while not done.is_set():
            check()

    reader_threads = [threading.Thread(target=reader_loop, args=(r,)) for r in readers]
    writer_threads = [threading.Thread(target=writer, args=(i,)) for i in range(THREADS)]
    for t in reader_threads + writer_threads:
        t.start()
    for t in writer_threads:
        t.join()
    done.set()
    for t in reader_threads:
        t.join()


def test_concurrent_writers_lose_nothing():
    stats = LiveStats(quantiles=(0.5, 0.9))
    _hammer(stats, lambda slot: [float(slot * PER_THREAD + i) for i in range(PER_THREAD)])
    total = THREADS * PER_THREAD
    assert stats.num() == total
    assert stats.decayed_num() == total
    assert stats.minimum() == 0.0
    assert stats.maximum() == float(total - 1)
    assert stats.mean() == (total - 1) / 2
    for estimator in stats.estimators:
        _, heights = estimator.markers()
        assert list(heights) == sorted(heights)


def test_readers_never_see_torn_state():
    stats = LiveStats(quantiles=(0.25, 0.75))
    torn = []

    def check_scalars():
        count, decayed, total = stats._lock.read(lambda: (stats._count, stats._decayed_count, stats._sum))
        # Every value is 1.0, so all three must agree at any consistent instant
        if not (count == decayed == total):
            torn.append((count, decayed, total))

    def check_markers():
        for estimator in stats.estimators:
            positions, heights = estimator.markers()
            if estimator.initialized and list(heights) != sorted(heights):
                torn.append((positions, heights))

    _hammer(stats, lambda slot: [1.0] * PER_THREAD, readers=(check_scalars, check_markers))
    assert torn == []
    assert stats.num() == THREADS * PER_THREAD


def test_concurrent_decay_and_writes_stay_consistent():
    stats = LiveStats(DecayConfig.counted(0.99, 50), quantiles=(0.5,))
    rng = random.Random(0)
    data = [[rng.random() for _ in range(PER_THREAD)] for _ in range(THREADS)]
    _hammer(stats, lambda slot: data[slot])
    assert stats.num() == THREADS * PER_THREAD
    # Every owed step is applied exactly once
    assert stats.decay_count() == (THREADS * PER_THREAD - 1) // 50
    assert 0.0 <= stats.decayed_minimum() <= stats.decayed_maximum() <= 1.0
    assert 0.0 <= stats.quantiles()[0.5] <= 1.0
