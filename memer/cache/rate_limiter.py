"""
Keyed rate limiter.

Implements the generic cell rate algorithm (GCRA), the continuous form of
a token bucket: each key stores a single "theoretical arrival time" (TAT).
A request at ``now`` is admitted when ``TAT + interval - burst * interval
<= now`` and pushes the TAT one interval forward; otherwise it is denied
with the exact time until that inequality holds.

With ``rate=10, period=60`` every key may burst 10 requests and then
regains one request every 6 seconds.
"""

import asyncio
import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

import structlog

from memer.cache.sharded_map import ShardedMap

logger = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)


class Clock(Protocol):
    """Source of monotonic time in seconds."""

    def now(self) -> float: ...


class MonotonicClock:
    """Reads ``time.monotonic()`` on every call."""

    def now(self) -> float:
        return time.monotonic()


class CoarseClock:
    """
    Buffered monotonic clock.

    While started, ``now()`` returns a cached reading refreshed by a
    background task every ``resolution`` seconds, so hot paths never hit
    the OS clock. When not started it falls back to a direct read.

    Usage:
        clock = CoarseClock(resolution=0.01)
        clock.start()          # inside a running event loop
        limiter = RateLimiter(clock=clock)
        ...
        await clock.stop()
    """

    def __init__(
        self,
        resolution: float = 0.01,
        source: Callable[[], float] = time.monotonic,
    ):
        if resolution <= 0:
            raise ValueError("resolution must be positive")
        self._resolution = resolution
        self._source = source
        self._now = source()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def now(self) -> float:
        if not self.running:
            return self._source()
        return self._now

    def start(self) -> None:
        """Start the background refresher. Must be called from a running loop."""
        if self.running:
            return
        self._now = self._source()
        self._task = asyncio.get_running_loop().create_task(
            self._tick(), name="coarse_clock"
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._resolution)
            self._now = self._source()


@dataclass(frozen=True)
class Admit:
    """The request may proceed."""


@dataclass(frozen=True)
class Deny:
    """The request was refused; retry after ``retry_after`` seconds."""

    retry_after: float


Decision = Admit | Deny

ADMIT = Admit()


class RateLimiter(Generic[K]):
    """
    GCRA rate limiter tracking an independent budget per key.

    State is created lazily on a key's first check. Each check is a
    single atomic read-modify-write of that key's TAT.
    """

    def __init__(
        self,
        rate: int = 10,
        period: float = 60.0,
        burst: int | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize the limiter.

        Args:
            rate: Requests replenished per ``period``
            period: Replenish window in seconds
            burst: Maximum requests admitted back to back (defaults to ``rate``)
            clock: Time source (defaults to MonotonicClock)
        """
        if rate < 1:
            raise ValueError("rate must be >= 1")
        if period <= 0:
            raise ValueError("period must be positive")
        if burst is not None and burst < 1:
            raise ValueError("burst must be >= 1")

        self._interval = period / rate
        self._burst = burst or rate
        self._tolerance = self._interval * self._burst
        self._clock = clock or MonotonicClock()
        self._tat: ShardedMap[K, float] = ShardedMap()

    @property
    def interval(self) -> float:
        """Seconds between replenished requests."""
        return self._interval

    @property
    def burst(self) -> int:
        return self._burst

    def check(self, key: K) -> Decision:
        """Consume one request from ``key``'s budget if available."""
        now = self._clock.now()
        decision: Decision = ADMIT

        def step(tat: float | None) -> float:
            nonlocal decision
            tat = now if tat is None else max(tat, now)
            allow_at = tat + self._interval - self._tolerance
            if now < allow_at:
                decision = Deny(retry_after=allow_at - now)
                return tat
            decision = ADMIT
            return tat + self._interval

        self._tat.update(key, step)

        if isinstance(decision, Deny):
            logger.debug("Rate limited", key=key, retry_after=round(decision.retry_after, 3))
        return decision

    def retain_recent(self) -> int:
        """
        Forget keys whose budget is fully replenished.

        Such keys behave exactly like never-seen keys, so dropping them
        only reclaims memory. Returns the number of keys removed.
        """
        now = self._clock.now()
        return self._tat.retain(lambda _key, tat: tat > now)

    def __len__(self) -> int:
        return len(self._tat)
