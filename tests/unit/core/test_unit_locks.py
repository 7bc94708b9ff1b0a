# tests/unit/core/test_unit_locks.py — v1
"""Tests for core/locks.py."""

from __future__ import annotations

import asyncio

import pytest

from adacta.core.locks import KeyedLock


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_serialized(self):
        locks = KeyedLock()
        order: list[str] = []

        async def worker(name: str):
            async with locks.hold("doc"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_keys_independent(self):
        locks = KeyedLock()
        async with locks.hold("a"):
            async with locks.hold("b"):
                assert locks.locked("a") and locks.locked("b")

    @pytest.mark.asyncio
    async def test_entries_dropped_when_idle(self):
        locks = KeyedLock()
        async with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0
        assert locks.locked("a") is False

    @pytest.mark.asyncio
    async def test_entry_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("a"):
                raise RuntimeError("boom")
        assert len(locks) == 0
