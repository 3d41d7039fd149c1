"""
Single-flight execution for async operations.

Concurrent callers asking for the same key share one in-flight operation
and all observe its result (or its exception). Once the operation settles
the key is released, so the next call starts a fresh flight.

Used for the authorization-code exchange, where a code is single-use and a
second exchange would be rejected by the provider, and for token refresh.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class SingleFlight:
    """
    Promise-memoization keyed by operation name.

    Example:
        flights = SingleFlight()
        token = await flights.run("refresh", lambda: provider.refresh_token(rt))
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future] = {}

    def in_flight(self, key: str) -> bool:
        future = self._inflight.get(key)
        return future is not None and not future.done()

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run factory() unless a flight for key is already pending.

        Args:
            key: Operation identifier
            factory: Zero-argument callable returning the awaitable to run

        Returns:
            Result of the shared operation

        Raises:
            Whatever the shared operation raised
        """
        future = self._inflight.get(key)
        if future is None or future.done():
            future = asyncio.ensure_future(factory())
            self._inflight[key] = future
            future.add_done_callback(lambda f, k=key: self._release(k, f))
        else:
            logger.debug("Joining in-flight operation", extra={"operation": key})

        # shield: a cancelled waiter must not cancel the shared flight
        return await asyncio.shield(future)

    def _release(self, key: str, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        # Mark the exception as retrieved when every waiter went away
        if not future.cancelled():
            future.exception()


__all__ = ["SingleFlight"]
