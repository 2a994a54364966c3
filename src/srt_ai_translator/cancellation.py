"""Cooperative cancellation for translation batches."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationAborted(Exception):
    """Raised when a cancellation token fires before an operation completes."""


class CancellationToken:
    """
    A write-once cancelled flag shared by one batch and all its attempts.

    Work checks `cancelled` at its suspension points; `sleep` and
    `run_until_cancelled` additionally wake up as soon as the flag is set.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """
        Sleep for delay seconds unless cancelled first.

        Returns:
            True if the token was cancelled before or during the sleep
        """
        if self.cancelled:
            return True
        if delay <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


async def run_until_cancelled(aw: Awaitable[T], token: CancellationToken) -> T:
    """
    Await aw, abandoning it if the token is cancelled first.

    Raises:
        OperationAborted: if cancellation won the race
    """
    if token.cancelled:
        # Close a coroutine that will never run
        close = getattr(aw, "close", None)
        if close is not None:
            close()
        raise OperationAborted("cancelled before start")

    task = asyncio.ensure_future(aw)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug(f"Abandoned operation raised after cancellation: {e!r}")
    raise OperationAborted("cancelled while waiting")
