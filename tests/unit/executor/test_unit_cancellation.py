# tests/unit/executor/test_unit_cancellation.py — v1
"""Tests for executor/cancellation.py."""

from __future__ import annotations

import asyncio

import pytest

from adacta.core.errors import ExecutionCancelled
from adacta.executor.cancellation import CancellationToken


class TestCancellationToken:
    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("deleted")
        token.cancel("shutdown")
        assert token.cancelled
        assert token.reason == "deleted"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("stop")
        with pytest.raises(ExecutionCancelled, match="stop"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        await CancellationToken().sleep(0.01)

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)
        with pytest.raises(ExecutionCancelled):
            await asyncio.wait_for(token.sleep(30), timeout=2)
