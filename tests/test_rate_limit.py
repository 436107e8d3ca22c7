"""Tests for the fixed-window rate limiter (fake clock, no HTTP)."""

from wabridge.api import rate_limit
from wabridge.api.rate_limit import FixedWindowLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestFixedWindowLimiter:
    def test_allows_up_to_limit(self):
        limiter = FixedWindowLimiter(limit=3, window=60, clock=FakeClock())
        assert [limiter.hit("1.2.3.4") for _ in range(4)] == [True, True, True, False]

    def test_clients_counted_separately(self):
        limiter = FixedWindowLimiter(limit=1, window=60, clock=FakeClock())
        assert limiter.hit("a")
        assert limiter.hit("b")
        assert not limiter.hit("a")

    def test_window_resets(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=1, window=60, clock=clock)
        assert limiter.hit("a")
        assert not limiter.hit("a")
        clock.now += 60
        assert limiter.hit("a")

    def test_rejected_hits_do_not_extend_window(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=1, window=60, clock=clock)
        limiter.hit("a")
        clock.now += 59
        assert not limiter.hit("a")
        clock.now += 1
        assert limiter.hit("a")

    def test_prune_drops_expired_windows(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=5, window=60, clock=clock)
        limiter.hit("old")
        clock.now += 30
        limiter.hit("recent")
        clock.now += 30
        limiter.prune()
        assert "old" not in limiter._windows
        assert "recent" in limiter._windows

    def test_prunes_when_too_many_clients(self, monkeypatch):
        monkeypatch.setattr(rate_limit, "MAX_TRACKED_CLIENTS", 2)
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=5, window=60, clock=clock)
        for key in ("a", "b", "c"):
            limiter.hit(key)
        clock.now += 60
        limiter.hit("d")
        assert set(limiter._windows) == {"d"}

    def test_no_rescan_until_a_window_can_expire(self, monkeypatch):
        """Over the cap with nothing expired, later hits skip the scan."""
        monkeypatch.setattr(rate_limit, "MAX_TRACKED_CLIENTS", 2)
        clock = FakeClock()
        limiter = FixedWindowLimiter(limit=5, window=60, clock=clock)
        for key in ("a", "b", "c"):
            limiter.hit(key)

        scans = []
        original_prune = limiter.prune

        def counting_prune():
            scans.append(clock.now)
            original_prune()

        monkeypatch.setattr(limiter, "prune", counting_prune)
        limiter.hit("d")
        clock.now += 30
        limiter.hit("e")
        limiter.hit("f")
        assert len(scans) == 1
        assert len(limiter._windows) == 6

        clock.now += 30
        limiter.hit("g")
        assert len(scans) == 2
        assert set(limiter._windows) == {"e", "f", "g"}
