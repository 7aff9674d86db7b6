"""Per-resource refresh scheduling with backoff and in-flight dedup.

Each tracked resource has its own interval. A resource is due when its
next-due time has passed, nothing is in flight for it and it is not paused.
Times are plain floats from the dispatcher's monotonic clock.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Optional

from .client.exceptions import ClientError, RateLimited
from .models import Resource

logger = logging.getLogger(__name__)

DEFAULT_MAX_INTERVAL = 300.0
DEFAULT_JITTER_RATIO = 0.1


@dataclass
class Schedule:
    """Bookkeeping for one resource."""

    interval: float
    next_due: float
    failures: int = 0
    in_flight: bool = False
    paused: bool = False
    # the outstanding fetch started before a refresh was asked for
    refetch: bool = False


def backoff_delay(base: float, failures: int, cap: float) -> float:
    """Delay after `failures` consecutive failures: min(base * 2^failures, cap)."""
    return min(base * (2 ** failures), cap)


class Scheduler:
    """Decides which resources to fetch next.

    Args:
        max_interval: Upper bound for backed-off delays
        jitter_ratio: Random extra delay after a failure, as a fraction of
            the backed-off delay
        rng: Random source (tests pass a seeded one)
    """

    def __init__(
        self,
        max_interval: float = DEFAULT_MAX_INTERVAL,
        jitter_ratio: float = DEFAULT_JITTER_RATIO,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.max_interval = max_interval
        self.jitter_ratio = jitter_ratio
        self._rng = rng or random.Random()
        self._schedules: dict[Resource, Schedule] = {}

    def track(self, resource: Resource, interval: float, due: float = 0.0) -> None:
        """Start polling a resource; already tracked resources keep their schedule."""
        if resource in self._schedules:
            return
        self._schedules[resource] = Schedule(interval=interval, next_due=due)

    def untrack(self, resource: Resource) -> None:
        self._schedules.pop(resource, None)

    def is_tracked(self, resource: Resource) -> bool:
        return resource in self._schedules

    def schedule(self, resource: Resource) -> Optional[Schedule]:
        return self._schedules.get(resource)

    def tracked(self) -> list[Resource]:
        return list(self._schedules)

    def poll_due(self, now: float) -> set[Resource]:
        """Return resources that should be fetched now and mark them in flight.

        A resource with a fetch outstanding is never returned again until
        record_success() or record_failure() is called for it.
        """
        due = set()
        for resource, sched in self._schedules.items():
            if sched.in_flight or sched.paused or sched.next_due > now:
                continue
            sched.in_flight = True
            due.add(resource)
        return due

    def record_success(self, resource: Resource, now: float) -> None:
        sched = self._completed(resource)
        if sched is None:
            return
        sched.failures = 0
        if sched.refetch:
            sched.refetch = False
            sched.next_due = now
        else:
            sched.next_due = now + sched.interval

    def record_failure(self, resource: Resource, now: float, error: ClientError) -> None:
        """Back off after a failed fetch.

        Unauthorized pauses the resource until reset(). RateLimited waits at
        least as long as the server asked.
        """
        sched = self._completed(resource)
        if sched is None:
            return
        sched.failures += 1
        sched.refetch = False
        if not getattr(error, "transient", True):
            sched.paused = True
            logger.warning("Pausing %s after non-transient failure: %s", resource, error)
            return

        delay = backoff_delay(sched.interval, sched.failures, self.max_interval)
        delay += self._rng.uniform(0, delay * self.jitter_ratio)
        if isinstance(error, RateLimited) and error.retry_after:
            delay = max(delay, error.retry_after)
        sched.next_due = now + delay
        logger.info(
            "%s failed %d time(s) in a row, next attempt in %.1fs: %s",
            resource, sched.failures, delay, error,
        )

    def expedite(self, now: float) -> None:
        """Make every non-paused resource due immediately (manual refresh)."""
        for sched in self._schedules.values():
            if not sched.paused:
                sched.next_due = min(sched.next_due, now)

    def refresh(self, resource: Resource, now: float) -> None:
        """Fetch a tracked resource again as soon as possible.

        When a fetch is already outstanding its result predates the request,
        so another fetch becomes due as soon as that one completes.
        """
        sched = self._schedules.get(resource)
        if sched is None:
            return
        if sched.in_flight:
            sched.refetch = True
        else:
            sched.next_due = min(sched.next_due, now)

    def refetch_pending(self, resource: Resource) -> bool:
        sched = self._schedules.get(resource)
        return sched is not None and sched.refetch

    def reset(self) -> None:
        """Forget all schedules, failures, pauses and in-flight fetches."""
        self._schedules.clear()

    def _completed(self, resource: Resource) -> Optional[Schedule]:
        sched = self._schedules.get(resource)
        if sched is None or not sched.in_flight:
            logger.debug("Ignoring completion for %s (not in flight)", resource)
            return None
        sched.in_flight = False
        return sched
