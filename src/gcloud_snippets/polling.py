"""Polling and timeout helpers around blocking SDK calls.

``poll`` re-fetches a value until it satisfies a predicate or a deadline
passes; ``wait_for_state`` binds it to an equality check on a state
string (e.g. a workflow becoming ``ACTIVE``).  ``run_with_timeout``
races a blocking call in a worker thread against a deadline.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, TypeVar

from google.api_core.exceptions import DeadlineExceeded
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_result,
    wait_exponential,
    wait_fixed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def poll(
    fetch: Callable[[], T],
    done: Callable[[T], bool],
    *,
    timeout: float,
    interval: float = 1.0,
    multiplier: float = 1.0,
    max_interval: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call *fetch* until *done* accepts its value.

    Args:
        fetch: Returns the current value (usually an SDK ``get`` call).
        done: Predicate deciding whether polling is over.
        timeout: Seconds before giving up.
        interval: Initial delay between fetches.
        multiplier: Factor applied to the delay after each miss.
            ``1.0`` keeps a fixed interval.
        max_interval: Upper bound for the delay, if any.
        sleep: Injected for tests.
        clock: Injected for tests.

    Returns:
        The first fetched value accepted by *done*.

    Raises:
        DeadlineExceeded: When *timeout* elapses first.  The last fetched
            value is not returned.
    """
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")

    deadline = clock() + timeout

    if multiplier == 1.0:
        backoff: Callable[[RetryCallState], float] = wait_fixed(interval)
    elif max_interval is None:
        backoff = wait_exponential(multiplier=interval, exp_base=multiplier)
    else:
        backoff = wait_exponential(multiplier=interval, exp_base=multiplier, max=max_interval)

    def deadline_passed(retry_state: RetryCallState) -> bool:
        return clock() >= deadline

    def wait(retry_state: RetryCallState) -> float:
        # Never sleep past the deadline.
        return min(backoff(retry_state), max(deadline - clock(), 0.0))

    def log_retry(retry_state: RetryCallState) -> None:
        logger.debug(
            "Attempt %d got %r, retrying in %.1fs",
            retry_state.attempt_number,
            retry_state.outcome.result() if retry_state.outcome else None,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )

    retrying = Retrying(
        retry=retry_if_result(lambda value: not done(value)),
        stop=deadline_passed,
        wait=wait,
        sleep=sleep,
        before_sleep=log_retry,
    )
    try:
        return retrying(fetch)
    except RetryError as exc:
        last = exc.last_attempt
        raise DeadlineExceeded(
            f"polling gave up after {last.attempt_number} attempt(s) and {timeout}s; "
            f"last value: {last.result()!r}"
        ) from None


def wait_for_state(
    fetch_state: Callable[[], str],
    target: str,
    *,
    timeout: float,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """Poll *fetch_state* at a fixed interval until it equals *target*."""
    return poll(
        fetch_state,
        lambda state: state == target,
        timeout=timeout,
        interval=interval,
        sleep=sleep,
        clock=clock,
    )


def run_with_timeout(func: Callable[..., T], *args: Any, timeout: float, **kwargs: Any) -> T:
    """Run *func* in a worker thread and wait at most *timeout* seconds.

    Whatever *func* returns or raises before the deadline is passed
    through unchanged.

    When the deadline wins the worker is neither cancelled nor joined: it
    keeps running in the background and its outcome is discarded.

    Raises:
        DeadlineExceeded: If *func* has not finished within *timeout*.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="run-with-timeout")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        if future.done():
            # func raised TimeoutError itself, or finished right at the deadline.
            return future.result()
        logger.warning(
            "%s did not finish within %ss; leaving it running in the background",
            getattr(func, "__name__", repr(func)),
            timeout,
        )
        raise DeadlineExceeded(f"deadline of {timeout}s exceeded") from None
    finally:
        executor.shutdown(wait=False)
