"""Deadline: per-request cancellation token bounding every call and backoff wait."""
import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeadlineExceeded(Exception):
    """The overall request deadline elapsed."""


class RequestCancelled(Exception):
    """The request was cancelled, e.g. because the client disconnected."""


class CallTimeout(Exception):
    """A single remote call exceeded its per-call budget."""

    def __init__(self, budget: float) -> None:
        super().__init__(f"Call exceeded its {budget:.1f}s budget")
        self.budget = budget


class Deadline:
    """Shared across all attempts of one request.

    ``run`` bounds a call by ``min(per_call_timeout, remaining)`` and aborts it
    by cancelling its task when either limit fires or ``cancel`` is called.
    ``sleep`` is a backoff wait that ends early on cancellation and raises
    once the deadline has passed.
    """

    def __init__(self, seconds: float) -> None:
        self._expires_at = time.monotonic() + seconds
        self._cancelled = asyncio.Event()

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self) -> None:
        match (self.cancelled, self.expired):
            case (True, _):
                raise RequestCancelled("Request cancelled")
            case (_, True):
                raise DeadlineExceeded("Request deadline expired")
            case _:
                pass

    def budget(self, per_call_timeout: float) -> float:
        return min(per_call_timeout, self.remaining())

    async def run(self, call: Awaitable[T], per_call_timeout: float) -> T:
        try:
            self.check()
        except Exception:
            # close the never-started coroutine
            getattr(call, "close", lambda: None)()
            raise
        remaining = self.remaining()
        deadline_bound = remaining <= per_call_timeout
        budget = min(per_call_timeout, remaining)

        task = asyncio.ensure_future(call)
        waiter = asyncio.ensure_future(self._cancelled.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, timeout=budget, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            await _abort(task)

        match (task in done, self.cancelled, deadline_bound):
            case (True, _, _):
                return task.result()
            case (_, True, _):
                raise RequestCancelled("Request cancelled during call")
            case (_, _, True):
                raise DeadlineExceeded("Request deadline expired during call")
            case _:
                raise CallTimeout(budget)

    async def sleep(self, delay: float) -> None:
        self.check()
        remaining = self.remaining()
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=min(delay, remaining))
        except asyncio.TimeoutError:
            pass
        self.check()
        match delay >= remaining:
            case True:
                raise DeadlineExceeded("Request deadline expired during backoff")
            case False:
                pass


async def _abort(task: asyncio.Future) -> None:
    """Cancel ``task`` if still running and wait for it to release its resources."""
    match task.done():
        case True:
            pass
        case False:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.debug("Aborted call raised during cancellation: %s", exc)
