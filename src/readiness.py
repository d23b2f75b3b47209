"""Bounded polling for externally provisioned resources.

Load balancers, DNS names and rollouts become ready asynchronously. A
ReadinessCheck describes one wait point; wait_until() polls it until a value
shows up or the deadline passes. A timeout is an outcome, not an exception:
the calling stage decides whether it is a hard or soft failure.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def is_absent(value: Any) -> bool:
    """None and blank strings mean "not ready yet"."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


@dataclass
class ReadinessCheck:
    """One wait point.

    Attributes:
        target: What is being waited for (used in log messages)
        poll: Returns the current value, or None/'' while not ready
        interval: Seconds to sleep between polls
        deadline: Total seconds to keep polling
    """
    target: str
    poll: Callable[[], Any]
    interval: float = 10.0
    deadline: float = 300.0


@dataclass(frozen=True)
class ReadinessOutcome:
    """Result of a readiness wait."""
    ready: bool
    value: Any = None
    attempts: int = 0
    elapsed: float = 0.0


def wait_until(
    check: ReadinessCheck,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> ReadinessOutcome:
    """Poll check until it yields a value or its deadline elapses.

    The poll function runs at least once. Sleeps are clipped to the time
    remaining, so the wait never overruns the deadline by more than one
    poll call.
    """
    start = clock()
    ends_at = start + check.deadline
    attempts = 0

    logger.info(f"Waiting for {check.target} (deadline {check.deadline:.0f}s)...")
    while True:
        attempts += 1
        value = check.poll()
        if not is_absent(value):
            elapsed = clock() - start
            logger.info(f"{check.target} ready after {elapsed:.1f}s: {value}")
            return ReadinessOutcome(ready=True, value=value, attempts=attempts, elapsed=elapsed)

        remaining = ends_at - clock()
        if remaining <= 0:
            break
        logger.debug(f"{check.target} not ready, retrying in {min(check.interval, remaining):.0f}s...")
        sleep(min(check.interval, remaining))

    elapsed = clock() - start
    logger.warning(f"{check.target} not ready after {elapsed:.1f}s ({attempts} attempts)")
    return ReadinessOutcome(ready=False, attempts=attempts, elapsed=elapsed)


def poll_command_output(run: Callable[[], Any]) -> Callable[[], Optional[str]]:
    """Adapt a CommandResult-returning callable into a poll function.

    Failed commands count as "not ready": while a resource is being created
    the query for it routinely errors.
    """
    def _poll() -> Optional[str]:
        result = run()
        if not result.ok:
            logger.debug(f"Poll command failed: {result.stderr.strip()[:200]}")
            return None
        return result.stdout.strip() or None
    return _poll
