import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Tuple, Type, TypeVar

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_fixed, wait_random

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    max_attempts: int = 2
    backoff_sec: float = 5.0
    jitter_sec: float = 5.0

    @classmethod
    def from_dict(cls, data: dict) -> "RetryPolicy":
        data = data or {}
        return cls(
            max_attempts=int(data.get("max_attempts", cls.max_attempts)),
            backoff_sec=float(data.get("backoff_sec", cls.backoff_sec)),
            jitter_sec=float(data.get("jitter_sec", cls.jitter_sec)),
        )


def resilient_call(
    fn: Callable[..., T],
    *args: Any,
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...],
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """Call ``fn`` up to ``policy.max_attempts`` times, backing off with jitter
    between attempts on the given exception types. The last error is re-raised."""
    retryer = Retrying(
        stop=stop_after_attempt(max(1, policy.max_attempts)),
        wait=wait_fixed(policy.backoff_sec) + wait_random(0, policy.jitter_sec),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retryer(fn, *args, **kwargs)
