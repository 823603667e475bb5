"""
Tests for per-thread turn serialization.
"""

import asyncio

import pytest

from services.locks import ThreadLockRegistry


class TestThreadLockRegistry:

    @pytest.mark.asyncio
    async def test_same_thread_is_serialized(self):
        locks = ThreadLockRegistry()
        order = []

        async def turn(name):
            async with locks.hold("t1"):
                order.append(f"{name}:start")
                await asyncio.sleep(0.01)
                order.append(f"{name}:end")

        await asyncio.gather(turn("a"), turn("b"))

        assert order == ["a:start", "a:end", "b:start", "b:end"]

    @pytest.mark.asyncio
    async def test_different_threads_overlap(self):
        locks = ThreadLockRegistry()
        order = []

        async def turn(thread_id):
            async with locks.hold(thread_id):
                order.append(f"{thread_id}:start")
                await asyncio.sleep(0.01)
                order.append(f"{thread_id}:end")

        await asyncio.gather(turn("t1"), turn("t2"))

        assert order[:2] == ["t1:start", "t2:start"]

    @pytest.mark.asyncio
    async def test_is_locked_and_cleanup(self):
        locks = ThreadLockRegistry()

        async with locks.hold("t1"):
            assert locks.is_locked("t1")
            assert not locks.is_locked("t2")
            assert len(locks) == 1

        assert not locks.is_locked("t1")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = ThreadLockRegistry()

        with pytest.raises(RuntimeError):
            async with locks.hold("t1"):
                raise RuntimeError("turn failed")

        assert len(locks) == 0
