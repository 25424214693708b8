"""Convergence polling for eventually-consistent cluster state.

A probe is a plain callable. It returns a value once the cluster has
converged and raises while it has not. ``eventually`` keeps calling it until
it returns or the deadline passes, then raises ``ConvergenceTimeout`` carrying
the last failure the probe reported.
"""
import logging
import re
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from .errors import AssertionMismatch, ConvergenceTimeout, ValidationError

logger = logging.getLogger("rke2.poll")

T = TypeVar('T')

# Failures that mean "not converged yet". Anything else is a bug in the probe.
RETRYABLE_ERRORS = (ValidationError, subprocess.SubprocessError, OSError)


@dataclass(frozen=True)
class PollBudget:
    """Timeout and interval for one convergence wait, in seconds."""
    timeout: float
    interval: float

    def __post_init__(self):
        if self.timeout < 0 or self.interval <= 0:
            raise ValueError(f"invalid poll budget: timeout={self.timeout} interval={self.interval}")


def eventually(
    probe: Callable[[], T],
    timeout: float,
    interval: float,
    description: Optional[str] = None,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``probe`` until it returns without raising, or the deadline passes.

    The first call happens immediately; later calls are spaced ``interval``
    seconds apart. Returns whatever the successful call returned.

    Raises:
        ConvergenceTimeout: With the last probe error attached
    """
    description = description or getattr(probe, "__name__", "probe")
    start = clock()
    attempts = 0
    while True:
        attempts += 1
        try:
            result = probe()
        except RETRYABLE_ERRORS as e:
            last_error = e
            logger.debug("%s not converged (attempt %d): %s", description, attempts, e)
        else:
            logger.debug("%s converged after %d attempt(s)", description, attempts)
            return result

        elapsed = clock() - start
        if elapsed >= timeout:
            logger.warning("%s timed out after %.1fs: %s", description, elapsed, last_error)
            raise ConvergenceTimeout(description, timeout, attempts, elapsed, last_error) from last_error
        sleep(interval)


def poll(probe: Callable[[], T], budget: PollBudget, description: Optional[str] = None, **kwargs) -> T:
    """``eventually`` with the timeout and interval taken from a ``PollBudget``."""
    return eventually(probe, budget.timeout, budget.interval, description, **kwargs)


def expect_all(items: Iterable[T], predicate: Callable[[T], bool],
               describe: Callable[[T], str] = str, what: str = "items") -> List[T]:
    """Assert every item satisfies ``predicate``.

    Raises:
        AssertionMismatch: Naming every item that does not
    """
    items = list(items)
    offenders = [item for item in items if not predicate(item)]
    if offenders:
        listed = ", ".join(describe(item) for item in offenders)
        raise AssertionMismatch(f"{len(offenders)} of {len(items)} {what} not as expected: {listed}")
    return items


def expect_equal(actual, expected, message: str = "") -> None:
    if actual != expected:
        prefix = f"{message}: " if message else ""
        raise AssertionMismatch(f"{prefix}expected {expected!r}, got {actual!r}")


def expect_contains(output: str, substring: str, message: str = "") -> str:
    if substring not in output:
        prefix = f"{message}: " if message else ""
        raise AssertionMismatch(f"{prefix}{substring!r} not found in output {output.strip()!r}")
    return output


def expect_matches(output: str, pattern: str, message: str = "") -> str:
    if not re.search(pattern, output):
        prefix = f"{message}: " if message else ""
        raise AssertionMismatch(f"{prefix}output {output.strip()!r} does not match {pattern!r}")
    return output


def eventually_all(
    fetch: Callable[[], Sequence[T]],
    predicate: Callable[[T], bool],
    timeout: float,
    interval: float,
    describe: Callable[[T], str] = str,
    description: Optional[str] = None,
    what: str = "items",
    **kwargs,
) -> List[T]:
    """Wait until every element of a freshly fetched sequence satisfies ``predicate``."""
    def probe():
        return expect_all(fetch(), predicate, describe, what)
    return eventually(probe, timeout, interval, description or f"all {what}", **kwargs)


def eventually_contains(fetch: Callable[[], str], substring: str, timeout: float, interval: float,
                        description: Optional[str] = None, **kwargs) -> str:
    """Wait until the output of ``fetch`` contains ``substring``."""
    def probe():
        return expect_contains(fetch(), substring)
    return eventually(probe, timeout, interval, description or f"output containing {substring!r}", **kwargs)


def eventually_matches(fetch: Callable[[], str], pattern: str, timeout: float, interval: float,
                       description: Optional[str] = None, **kwargs) -> str:
    """Wait until the output of ``fetch`` matches the regular expression ``pattern``."""
    def probe():
        return expect_matches(fetch(), pattern)
    return eventually(probe, timeout, interval, description or f"output matching {pattern!r}", **kwargs)
