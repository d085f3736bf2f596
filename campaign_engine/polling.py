"""
Poll-with-timeout primitive.

Shared by the receipt wait and the "already known" recovery path so neither
inlines its own sleep-then-recheck loop.
"""
import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


class PollTimeout(Exception):
    """Raised when the polled function never produced a value within the bound."""

    def __init__(self, elapsed: float, polls: int):
        super().__init__(f"No result after {polls} polls in {elapsed:.1f}s")
        self.elapsed = elapsed
        self.polls = polls


def poll_until(
    fn: Callable[[], Optional[T]],
    interval: float,
    timeout: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` until it returns something other than None.

    ``fn`` is always called at least once. Between calls the poller sleeps
    ``interval`` seconds, never past the deadline.

    Args:
        fn: Zero-argument callable returning the awaited value or None
        interval: Seconds between calls
        timeout: Maximum seconds to keep polling
        clock: Monotonic clock, injectable for tests
        sleep: Sleep function, injectable for tests

    Returns:
        The first non-None value returned by ``fn``

    Raises:
        PollTimeout: If the deadline passes without a value
    """
    start = clock()
    deadline = start + timeout
    polls = 0
    while True:
        polls += 1
        result = fn()
        if result is not None:
            return result
        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeout(clock() - start, polls)
        sleep(min(interval, remaining))
