"""
Tests for the fixed-window bucket limiter and its route dependency.
"""

from unittest.mock import AsyncMock, MagicMock

from clarus.rate_limit import FixedWindowRateLimiter, InMemoryRateStore, WindowEntry
from clarus.services import TranslationOutcome


class FakeClock:
    def __init__(self, now_ms: int = 1_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int):
        self.now_ms += ms


class TestFixedWindowRateLimiter:
    """Tests for FixedWindowRateLimiter.check."""

    def test_allows_up_to_max_then_blocks(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(clock=clock)

        results = [limiter.check("translate:1.2.3.4", 3, 60_000) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    def test_reset_time_counts_down(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(clock=clock)
        limiter.check("k", 1, 60_000)
        clock.advance(15_000)

        result = limiter.check("k", 1, 60_000)

        assert result.allowed is False
        assert result.reset_in_ms == 45_000

    def test_window_resets_after_expiry(self):
        """The first request after the window closes opens a fresh one."""
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(clock=clock)
        limiter.check("k", 1, 60_000)
        clock.advance(60_000)

        result = limiter.check("k", 1, 60_000)

        assert result.allowed is True
        assert result.reset_in_ms == 60_000

    def test_keys_are_independent(self):
        limiter = FixedWindowRateLimiter(clock=FakeClock())
        assert limiter.check("translate:a", 1, 1000).allowed
        assert limiter.check("translate:b", 1, 1000).allowed
        assert not limiter.check("translate:a", 1, 1000).allowed

    def test_periodic_sweep_evicts_expired(self):
        clock = FakeClock()
        store = InMemoryRateStore()
        limiter = FixedWindowRateLimiter(store, sweep_every=3, clock=clock)
        limiter.check("a", 5, 1000)
        limiter.check("b", 5, 1000)
        clock.advance(5000)

        # Third call triggers the sweep before counting
        limiter.check("c", 5, 1000)

        assert store.get("a") is None
        assert store.get("b") is None
        assert store.size() == 1

    def test_sweep_when_store_too_large(self):
        clock = FakeClock()
        store = InMemoryRateStore()
        for n in range(5):
            store.set(f"old{n}", WindowEntry(count=1, reset_at_ms=clock.now_ms - 1))
        limiter = FixedWindowRateLimiter(store, sweep_every=1000, max_entries=3, clock=clock)

        limiter.check("new", 5, 1000)

        assert store.size() == 1


class TestTranslateRouteLimit:
    """Tests for the per-IP translate bucket on the API."""

    def test_21st_request_gets_429(self, client, app_state, user_id):
        """Twenty translate requests a minute are allowed; the next is rejected."""
        service = MagicMock()
        service.translate = AsyncMock(return_value=TranslationOutcome(None, in_progress=True))
        app_state.translation_service = service
        headers = {"X-User-Id": str(user_id)}

        statuses = [
            client.post("/content/1/translate", json={"language": "es"}, headers=headers).status_code
            for _ in range(21)
        ]

        assert statuses[:20] == [202] * 20
        assert statuses[20] == 429
        assert service.translate.await_count == 20

    def test_429_carries_retry_after(self, client, app_state, user_id):
        service = MagicMock()
        service.translate = AsyncMock(return_value=TranslationOutcome(None, in_progress=True))
        app_state.translation_service = service
        headers = {"X-User-Id": str(user_id)}

        for _ in range(20):
            client.post("/content/1/translate", json={"language": "es"}, headers=headers)
        response = client.post("/content/1/translate", json={"language": "es"}, headers=headers)

        assert response.status_code == 429
        assert 1 <= int(response.headers["Retry-After"]) <= 60
        assert "translate" in response.json()["detail"]

    def test_in_progress_response(self, client, app_state, user_id):
        """A running translation answers 202 with Retry-After."""
        service = MagicMock()
        service.translate = AsyncMock(return_value=TranslationOutcome(None, in_progress=True))
        app_state.translation_service = service

        response = client.post("/content/7/translate", json={"language": "fr"},
                               headers={"X-User-Id": str(user_id)})

        assert response.status_code == 202
        assert response.headers["Retry-After"] == "5"
        assert response.json()["processing_status"] == "translating"
        service.translate.assert_awaited_once_with(7, "fr", user_id)
