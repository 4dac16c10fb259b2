"""Tests for the RateLimiter class and the jittered delay."""

import time
import unittest

from scrapestudio.rate_limiter import RateLimiter, jittered_delay


class TestRateLimiter(unittest.TestCase):
    """Verify that the rate limiter throttles requests per host."""

    def test_acquire_does_not_block_first_call(self):
        """The first acquire() call should return almost immediately."""
        limiter = RateLimiter(qps=10.0)
        start = time.time()
        limiter.acquire("https://example.com/a")
        elapsed = time.time() - start
        self.assertLess(elapsed, 0.05)

    def test_acquire_throttles_rapid_calls_to_one_host(self):
        """Rapid acquire() calls at 2 QPS should enforce delays between requests."""
        limiter = RateLimiter(qps=2.0)
        start = time.time()
        limiter.acquire("https://example.com/a")
        limiter.acquire("https://example.com/b")
        limiter.acquire("https://example.com/c")
        elapsed = time.time() - start
        # 3 calls at 2 QPS: 2 intervals of 0.5s, with slack for scheduling
        self.assertGreaterEqual(elapsed, 0.4)

    def test_hosts_are_throttled_independently(self):
        """Different hosts should not wait on each other."""
        limiter = RateLimiter(qps=1.0)
        start = time.time()
        limiter.acquire("https://a.example.com/")
        limiter.acquire("https://b.example.com/")
        limiter.acquire("https://c.example.com/")
        self.assertLess(time.time() - start, 0.3)

    def test_zero_qps_does_not_block(self):
        """QPS of 0 should disable rate limiting entirely."""
        limiter = RateLimiter(qps=0.0)
        start = time.time()
        for _ in range(10):
            limiter.acquire("https://example.com/")
        elapsed = time.time() - start
        self.assertLess(elapsed, 0.1)


class TestJitteredDelay(unittest.TestCase):
    """Verify the base*(0.5+rand) pre-request delay."""

    def test_bounds(self):
        """The jittered delay should stay within half and one and a half times the base."""
        self.assertAlmostEqual(jittered_delay(2.0, rand=lambda: 0.0), 1.0)
        self.assertAlmostEqual(jittered_delay(2.0, rand=lambda: 0.999), 2.998)

    def test_zero_base_means_no_delay(self):
        """A zero base delay should not sleep."""
        self.assertEqual(jittered_delay(0.0, rand=lambda: 0.7), 0.0)


if __name__ == "__main__":
    unittest.main()
