"""Cooperative cancellation for the run loop.

Every suspension point of a run (model calls, waits, polling sleeps) is
awaited through a ``CancellationToken`` so a stop request interrupts it
promptly instead of waiting for it to finish. Work already dispatched
into the page is not interrupted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from tabpilot.exceptions import RunCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """One-shot cancel signal backed by an ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Run stopped by user.") -> None:
        """Signal cancellation; idempotent."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise ``RunCancelledError`` if cancellation was requested."""
        if self._event.is_set():
            raise RunCancelledError(self.reason or "Run stopped by user.")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless cancellation fires first.

        On cancellation the in-flight awaitable is cancelled (aborting an
        HTTP request, for instance) and ``RunCancelledError`` is raised.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
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
        except Exception as exc:
            logger.debug("Cancelled operation raised while unwinding: %s", exc)
        raise RunCancelledError(self.reason or "Run stopped by user.")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first."""
        await self.guard(asyncio.sleep(max(0.0, seconds)))
