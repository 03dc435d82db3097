"""Per-operation minimum-interval rate limiting for upstream API calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from enum import Enum
from typing import Optional, Union

from ..exceptions import CancellationError, ConfigError

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    """Upstream operations that carry their own throughput ceiling."""

    LIST = "list"
    TAG_LOOKUP = "tag_lookup"
    DETAIL = "detail"


Kind = Union[OperationKind, str]


class _KindState:
    __slots__ = ("lock", "last_call", "acquires", "waited")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.last_call: Optional[float] = None
        self.acquires = 0
        self.waited = 0.0


class MinIntervalRateLimiter:
    """
    Rate limiter that enforces a minimum interval per operation kind.

    Every caller of a kind, across every listing session sharing this
    limiter, is serialized through that kind's lock, so consecutive
    successful acquires are at least ``interval(kind)`` apart. Kinds are
    independent: a slow detail gate never delays listing calls.

    The limiter is owned by whoever creates it. Pass the same instance to
    several sessions to share one quota; create separate instances for
    independent quotas (e.g. in tests).

    Example:
        limiter = MinIntervalRateLimiter({OperationKind.LIST: 1.0, OperationKind.TAG_LOOKUP: 0.2})

        await limiter.acquire(OperationKind.LIST)
        page = await api.list_page(None, 50)

        await limiter.acquire(OperationKind.LIST)  # waits ~1s after the first
    """

    def __init__(
        self,
        intervals: Optional[Mapping[Kind, float]] = None,
        default_interval: float = 0.0,
    ) -> None:
        """
        Initialize the rate limiter.

        Args:
            intervals: Minimum seconds between calls, per operation kind
            default_interval: Interval for kinds not listed in ``intervals``

        Raises:
            ConfigError: If any interval is negative
        """
        if default_interval < 0:
            raise ConfigError(f"default_interval must be >= 0, got {default_interval}")
        self.default_interval = default_interval
        self._intervals: dict[str, float] = {}
        for kind, seconds in (intervals or {}).items():
            self.set_interval(kind, seconds)

        self._states: dict[str, _KindState] = {}

    @staticmethod
    def _key(kind: Kind) -> str:
        return kind.value if isinstance(kind, OperationKind) else str(kind)

    def _state(self, kind: Kind) -> _KindState:
        key = self._key(kind)
        state = self._states.get(key)
        if state is None:
            state = self._states[key] = _KindState()
        return state

    def interval(self, kind: Kind) -> float:
        """Configured minimum interval for a kind."""
        return self._intervals.get(self._key(kind), self.default_interval)

    def set_interval(self, kind: Kind, seconds: float) -> None:
        """
        Change the interval for a kind.

        Takes effect on the next acquire; the last-call timestamp is kept.
        """
        if seconds < 0:
            raise ConfigError(f"Interval for {self._key(kind)} must be >= 0, got {seconds}")
        self._intervals[self._key(kind)] = float(seconds)

    async def acquire(self, kind: Kind, stop: Optional[asyncio.Event] = None) -> None:
        """
        Wait until a call of ``kind`` may start, then record it.

        Args:
            kind: The operation about to be issued
            stop: Optional session stop signal observed while waiting

        Raises:
            CancellationError: If ``stop`` is set while queued or waiting.
                The kind's timestamp is left untouched.
        """
        state = self._state(kind)
        delay = self.interval(kind)

        await self._hold(state, kind, stop)
        try:
            if stop is not None and stop.is_set():
                raise CancellationError(f"{self._key(kind)}: cancelled before acquire")

            wait_time = 0.0
            if state.last_call is not None:
                since_last = time.monotonic() - state.last_call
                wait_time = max(0.0, delay - since_last)
                if wait_time > 0:
                    logger.debug(
                        f"Rate limiting {self._key(kind)}: sleeping {wait_time * 1000:.0f}ms "
                        f"({since_last * 1000:.0f}ms since last call)"
                    )

            if wait_time > 0:
                if stop is None:
                    await asyncio.sleep(wait_time)
                else:
                    try:
                        await asyncio.wait_for(stop.wait(), timeout=wait_time)
                    except asyncio.TimeoutError:
                        pass
                    else:
                        raise CancellationError(f"{self._key(kind)}: cancelled while rate limited")

            state.last_call = time.monotonic()
            state.acquires += 1
            state.waited += wait_time
        finally:
            state.lock.release()

    async def _hold(self, state: _KindState, kind: Kind, stop: Optional[asyncio.Event]) -> None:
        """Take the kind's lock, giving up if ``stop`` is set while queued."""
        if stop is None:
            await state.lock.acquire()
            return

        locker = asyncio.ensure_future(state.lock.acquire())
        waiter = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({locker, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            waiter.cancel()
            locker.cancel()
            await asyncio.gather(locker, waiter, return_exceptions=True)
            if not locker.cancelled() and locker.exception() is None:
                state.lock.release()
            raise

        waiter.cancel()
        if not locker.done():
            locker.cancel()
        await asyncio.gather(locker, waiter, return_exceptions=True)
        if locker.cancelled():
            raise CancellationError(f"{self._key(kind)}: cancelled while queued")
        locker.result()

    def get_stats(self) -> dict:
        """Get rate limiter statistics per kind."""
        return {
            key: {
                "interval": self._intervals.get(key, self.default_interval),
                "acquires": state.acquires,
                "waited_seconds": round(state.waited, 3),
            }
            for key, state in self._states.items()
        }
