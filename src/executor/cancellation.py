# src/executor/cancellation.py — v1
"""Cooperative cancellation tokens.

A token is handed from the orchestrator down to jobs and the executor.
Holders check it at every suspension point; nothing is cancelled behind
their back.
"""

from __future__ import annotations

import asyncio

from adacta.core.errors import ExecutionCancelled


class CancellationToken:
    """One-shot cancellation signal shared by all jobs of a document run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Suspend until the token fires."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ExecutionCancelled(self._reason or "cancelled")

    async def sleep(self, delay: float) -> None:
        """Sleep for delay seconds, waking early if the token fires.

        Raises:
            ExecutionCancelled: If the token fired before or during the sleep.
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()
