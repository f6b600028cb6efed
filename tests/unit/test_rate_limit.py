"""Tests for the per-partner postback rate limiter."""
from unittest.mock import MagicMock, patch

import redis

from affiliate_core.utils.rate_limit import InMemoryRateLimiter, PartnerRateLimiter


class TestInMemoryRateLimiter:

    def test_allows_up_to_limit(self):
        limiter = InMemoryRateLimiter()
        results = [limiter.check_and_increment("k", 3, 60) for _ in range(4)]
        assert results == [(True, 2), (True, 1), (True, 0), (False, 0)]

    def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter()
        assert limiter.check_and_increment("a", 1, 60) == (True, 0)
        assert limiter.check_and_increment("b", 1, 60) == (True, 0)
        assert limiter.check_and_increment("a", 1, 60) == (False, 0)

    def test_window_slides(self):
        limiter = InMemoryRateLimiter()
        with patch("affiliate_core.utils.rate_limit.time.time", return_value=1000.0):
            assert limiter.check_and_increment("k", 1, 60)[0] is True
            assert limiter.check_and_increment("k", 1, 60)[0] is False
        with patch("affiliate_core.utils.rate_limit.time.time", return_value=1061.0):
            assert limiter.check_and_increment("k", 1, 60)[0] is True

    def test_reset(self):
        limiter = InMemoryRateLimiter()
        limiter.check_and_increment("k", 1, 60)
        limiter.reset()
        assert limiter.check_and_increment("k", 1, 60)[0] is True


class TestPartnerRateLimiter:

    def test_memory_fallback_per_partner(self):
        limiter = PartnerRateLimiter()
        assert limiter.check_partner_limit("p1", limit=2) == (True, 1)
        assert limiter.check_partner_limit("p1", limit=2) == (True, 0)
        assert limiter.check_partner_limit("p1", limit=2) == (False, 0)
        assert limiter.check_partner_limit("p2", limit=2) == (True, 1)

    def test_redis_sliding_window(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.return_value = [0, 4, 1, True]
        limiter = PartnerRateLimiter(client)

        assert limiter.check_partner_limit("p1", limit=5) == (True, 0)
        pipe.zremrangebyscore.assert_called_once()
        client.zrem.assert_not_called()

    def test_redis_over_limit_removes_entry(self):
        client = MagicMock()
        client.pipeline.return_value.execute.return_value = [0, 5, 1, True]
        limiter = PartnerRateLimiter(client)

        assert limiter.check_partner_limit("p1", limit=5) == (False, 0)
        client.zrem.assert_called_once()

    def test_redis_error_falls_back_to_memory(self):
        client = MagicMock()
        client.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        limiter = PartnerRateLimiter(client)

        assert limiter.check_partner_limit("p1", limit=1) == (True, 0)
        assert limiter.check_partner_limit("p1", limit=1) == (False, 0)
