"""Per-key single-flight gate.

At most one flight (an asyncio task) runs per key. Requests arriving
while a flight is active join it and receive its result or exception
instead of starting a second one.

Forced flights are special: a forced request must observe a fresh scan,
so it does not join an unforced flight (which may end in a cache hit).
It waits for that flight to finish and then starts its own. Unforced
requests may join a forced flight.

Each joiner awaits the flight through asyncio.shield(), so one caller
going away does not cancel work others are waiting on. When the last
waiter is cancelled, the flight itself is cancelled, which unwinds its
workspace and terminates its subprocesses.

Keys are independent: the gate never makes work on one key wait for
another.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Flight(Generic[T]):
    task: "asyncio.Task[T]"
    force: bool
    waiters: int = 0


class SingleFlight(Generic[T]):
    def __init__(self) -> None:
        self._flights: dict[str, _Flight[T]] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._flights

    async def run(
        self,
        key: str,
        work: Callable[[], Awaitable[T]],
        force: bool = False,
    ) -> T:
        """Run work() under key, or join the flight already running for key."""
        while True:
            flight = self._flights.get(key)
            if flight is None:
                break
            if flight.force or not force:
                logger.info("Joining in-flight scan for %s", key)
                return await self._join(flight)
            logger.info("Forced scan for %s waiting for in-flight scan to finish", key)
            await asyncio.wait({flight.task})

        task = asyncio.ensure_future(work())
        flight = _Flight(task=task, force=force)
        self._flights[key] = flight
        task.add_done_callback(lambda _t, k=key, f=flight: self._discard(k, f))
        return await self._join(flight)

    def _discard(self, key: str, flight: _Flight[T]) -> None:
        if self._flights.get(key) is flight:
            del self._flights[key]

    async def _join(self, flight: _Flight[T]) -> T:
        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            if flight.waiters == 1 and not flight.task.done():
                logger.info("Last waiter cancelled; cancelling in-flight scan")
                flight.task.cancel()
            raise
        finally:
            flight.waiters -= 1
