import pytest

from src.application_logger.retry import RetryPolicy, resilient_call


class Flaky:
    def __init__(self, failures, exc=ConnectionError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("try again")
        return value * 2


def test_retries_then_succeeds():
    fn = Flaky(1)
    sleeps = []
    policy = RetryPolicy(max_attempts=2, backoff_sec=5, jitter_sec=5)
    assert resilient_call(fn, 21, policy=policy, retry_on=(ConnectionError,), sleep=sleeps.append) == 42
    assert fn.calls == 2
    assert len(sleeps) == 1
    assert 5 <= sleeps[0] <= 10


def test_last_error_is_reraised():
    fn = Flaky(5)
    with pytest.raises(ConnectionError):
        resilient_call(fn, 1, policy=RetryPolicy(max_attempts=2, backoff_sec=0, jitter_sec=0),
                       retry_on=(ConnectionError,), sleep=lambda s: None)
    assert fn.calls == 2


def test_other_errors_are_not_retried():
    fn = Flaky(1, exc=KeyError)
    with pytest.raises(KeyError):
        resilient_call(fn, 1, policy=RetryPolicy(), retry_on=(ConnectionError,), sleep=lambda s: None)
    assert fn.calls == 1


def test_policy_from_dict():
    assert RetryPolicy.from_dict({"max_attempts": 3}) == RetryPolicy(max_attempts=3, backoff_sec=5.0, jitter_sec=5.0)
    assert RetryPolicy.from_dict(None) == RetryPolicy()
