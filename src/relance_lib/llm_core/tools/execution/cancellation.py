"""Conversation-level cancellation shared by executions and inter-batch pauses."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Optional

from ...exceptions import ToolCancelledError


class CancellationToken:
    """
    Cooperative cancellation flag for one conversation.

    Cancelling the token interrupts in-flight tool executions and the pause
    between two chunks, so an abandoned session stops issuing batches without
    waiting for unrelated timeouts.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep for ``seconds`` unless cancelled first.

        Returns:
            True if the full pause elapsed, False if it was cut short by cancellation.
        """
        if self.cancelled:
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False

    async def race(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless the token is cancelled first.

        Raises:
            ToolCancelledError: If the token fires before the awaitable completes.
                The awaitable is cancelled in that case.
        """
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task in done:
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise ToolCancelledError(self.reason or "Cancelled")


async def sleep_or_cancel(seconds: float, token: Optional[CancellationToken]) -> bool:
    """Pause between chunks, honouring an optional token. Returns False if cancelled."""
    if token is None:
        if seconds > 0:
            await asyncio.sleep(seconds)
        return True
    return await token.sleep(seconds)
