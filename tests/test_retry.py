import unittest

from babynames_pipeline.rate_limit import TokenBucket
from babynames_pipeline.retry import RetryPolicy


class TestRetryPolicy(unittest.TestCase):
    def test_exponential_and_capped(self):
        p = RetryPolicy(backoff_base_sec=1.0, backoff_max_sec=5.0, rand=lambda a, b: 0.0)
        self.assertEqual([p.delay(n) for n in range(1, 6)], [1.0, 2.0, 4.0, 5.0, 5.0])

    def test_retry_after_is_a_floor(self):
        p = RetryPolicy(backoff_base_sec=1.0, rand=lambda a, b: 0.0)
        self.assertEqual(p.delay(1, retry_after=10.0), 10.0)
        self.assertEqual(p.delay(3, retry_after=0.5), 4.0)

    def test_jitter_bounded_by_ratio(self):
        seen = []

        def rand(a, b):
            seen.append((a, b))
            return b

        p = RetryPolicy(backoff_base_sec=2.0, jitter_ratio=0.25, rand=rand)
        self.assertEqual(p.delay(1), 2.5)
        self.assertEqual(seen, [(0, 0.5)])

    def test_should_retry_bound(self):
        p = RetryPolicy(max_attempts=3)
        self.assertTrue(p.should_retry(1))
        self.assertTrue(p.should_retry(2))
        self.assertFalse(p.should_retry(3))

    def test_wait_sleeps_the_delay(self):
        sleeps = []
        p = RetryPolicy(sleep=sleeps.append, rand=lambda a, b: 0.0)
        self.assertEqual(p.wait(2), 2.0)
        self.assertEqual(sleeps, [2.0])


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, s):
        self.sleeps.append(s)
        self.now += s


class TestTokenBucket(unittest.TestCase):
    def test_burst_then_paced(self):
        clock = FakeClock()
        bucket = TokenBucket(rate_per_sec=2.0, burst=2, clock=clock, sleep=clock.sleep)
        bucket.acquire()
        bucket.acquire()
        self.assertEqual(clock.sleeps, [])
        bucket.acquire()
        self.assertAlmostEqual(sum(clock.sleeps), 0.5)


if __name__ == "__main__":
    unittest.main()
