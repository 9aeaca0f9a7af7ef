"""Tests for SingleFlight: one computation per key, shared outcome, cancellation."""

from __future__ import annotations

import asyncio

import pytest

from context_mcp.context.singleflight import SingleFlight


class TestSingleFlight:
    async def test_concurrent_callers_share_one_call(self) -> None:
        flight: SingleFlight[str] = SingleFlight()
        calls = 0
        gate = asyncio.Event()

        async def compute() -> str:
            nonlocal calls
            calls += 1
            await gate.wait()
            return "value"

        tasks = [asyncio.create_task(flight.do("k", compute)) for _ in range(10)]
        await asyncio.sleep(0)
        assert flight.in_flight("k")
        gate.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert {value for value, _ in results} == {"value"}
        assert sum(1 for _, shared in results if not shared) == 1
        assert len(flight) == 0

    async def test_distinct_keys_run_independently(self) -> None:
        flight: SingleFlight[str] = SingleFlight()
        seen: list[str] = []

        async def compute(key: str) -> str:
            seen.append(key)
            await asyncio.sleep(0.01)
            return key

        results = await asyncio.gather(
            flight.do("a", lambda: compute("a")),
            flight.do("b", lambda: compute("b")),
        )
        assert sorted(seen) == ["a", "b"]
        assert [value for value, _ in results] == ["a", "b"]

    async def test_exception_reaches_every_waiter(self) -> None:
        flight: SingleFlight[str] = SingleFlight()
        calls = 0

        async def boom() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise RuntimeError("backend down")

        results = await asyncio.gather(*(flight.do("k", boom) for _ in range(5)), return_exceptions=True)
        assert calls == 1
        assert all(isinstance(r, RuntimeError) for r in results)
        assert not flight.in_flight("k")

    async def test_key_released_after_completion(self) -> None:
        flight: SingleFlight[int] = SingleFlight()
        counter = 0

        async def compute() -> int:
            nonlocal counter
            counter += 1
            return counter

        first, _ = await flight.do("k", compute)
        second, shared = await flight.do("k", compute)
        assert (first, second) == (1, 2)
        assert shared is False

    async def test_cancelled_waiter_does_not_cancel_others(self) -> None:
        flight: SingleFlight[str] = SingleFlight()
        gate = asyncio.Event()

        async def compute() -> str:
            await gate.wait()
            return "done"

        leader = asyncio.create_task(flight.do("k", compute))
        follower = asyncio.create_task(flight.do("k", compute))
        await asyncio.sleep(0)

        leader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await leader

        gate.set()
        value, shared = await follower
        assert value == "done"
        assert shared is True

    async def test_last_waiter_cancelled_abandons_computation(self) -> None:
        flight: SingleFlight[str] = SingleFlight()
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def compute() -> str:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return "never"

        waiter = asyncio.create_task(flight.do("k", compute))
        await started.wait()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        await asyncio.wait_for(cancelled.wait(), timeout=1)
        assert not flight.in_flight("k")
