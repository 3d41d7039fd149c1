"""
Tests for single-flight execution.
"""

import asyncio

import pytest

from core.resilience.single_flight import SingleFlight


class TestSingleFlight:

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_flight(self):
        flights = SingleFlight()
        calls = 0
        gate = asyncio.Event()

        async def operation():
            nonlocal calls
            calls += 1
            await gate.wait()
            return "token"

        waiters = [asyncio.create_task(flights.run("refresh", operation)) for _ in range(5)]
        await asyncio.sleep(0)
        assert flights.in_flight("refresh")

        gate.set()
        results = await asyncio.gather(*waiters)

        assert results == ["token"] * 5
        assert calls == 1

    @pytest.mark.asyncio
    async def test_all_waiters_observe_the_failure(self):
        flights = SingleFlight()
        gate = asyncio.Event()

        async def operation():
            await gate.wait()
            raise RuntimeError("rejected")

        waiters = [asyncio.create_task(flights.run("exchange", operation)) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert len({id(r) for r in results}) == 1

    @pytest.mark.asyncio
    async def test_key_released_after_settling(self):
        flights = SingleFlight()
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            return calls

        assert await flights.run("k", operation) == 1
        await asyncio.sleep(0)
        assert not flights.in_flight("k")
        assert await flights.run("k", operation) == 2

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        flights = SingleFlight()

        async def value(v):
            return v

        a, b = await asyncio.gather(
            flights.run("a", lambda: value(1)),
            flights.run("b", lambda: value(2)),
        )
        assert (a, b) == (1, 2)

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_flight(self):
        flights = SingleFlight()
        gate = asyncio.Event()

        async def operation():
            await gate.wait()
            return "done"

        first = asyncio.create_task(flights.run("k", operation))
        second = asyncio.create_task(flights.run("k", operation))
        await asyncio.sleep(0)

        first.cancel()
        gate.set()

        assert await second == "done"
        with pytest.raises(asyncio.CancelledError):
            await first

    def test_nothing_in_flight_initially(self):
        assert not SingleFlight().in_flight("anything")
