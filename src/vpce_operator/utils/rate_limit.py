"""Rate limiting utilities for API calls."""

from __future__ import annotations

import os
import threading
import time
from functools import wraps
from typing import Any, Callable, Iterable, Iterator, TypeVar

_F = TypeVar("_F", bound=Callable[..., Any])
_T = TypeVar("_T")

# Rate limit configuration
_K8S_RATE_LIMIT_PER_SECOND = float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0"))
_AWS_RATE_LIMIT_PER_SECOND = float(os.getenv("AWS_RATE_LIMIT_PER_SECOND", "10.0"))


class _MinIntervalLimiter:
    """Spaces calls at least ``1 / rate`` seconds apart across worker threads."""

    def __init__(self, rate_per_second: float) -> None:
        self.min_interval = 1.0 / rate_per_second if rate_per_second > 0 else 0.0
        self._last_call_time = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            time_since_last_call = time.monotonic() - self._last_call_time
            if time_since_last_call < self.min_interval:
                time.sleep(self.min_interval - time_since_last_call)
            self._last_call_time = time.monotonic()


_k8s_limiter = _MinIntervalLimiter(_K8S_RATE_LIMIT_PER_SECOND)
_aws_limiter = _MinIntervalLimiter(_AWS_RATE_LIMIT_PER_SECOND)


def rate_limit_k8s(func: _F) -> _F:
    """Decorator to rate limit Kubernetes API calls."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _k8s_limiter.wait()
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def rate_limit_aws(func: _F) -> _F:
    """Decorator to rate limit AWS API calls.

    AWS throttles EC2 mutations per account, so all workers share one limiter.
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _aws_limiter.wait()
        return func(*args, **kwargs)

    return wrapper  # type: ignore


def rate_limit_aws_pages(pages: Iterable[_T]) -> Iterator[_T]:
    """Rate limit every page fetch of a lazily paginated AWS call.

    Paginators issue one request per page as they are iterated, so each
    fetch waits on the shared AWS limiter like a single call does.
    """
    iterator = iter(pages)
    while True:
        _aws_limiter.wait()
        try:
            page = next(iterator)
        except StopIteration:
            return
        yield page
