"""Async utilities for fan-out operations."""

import asyncio
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class Settled(Generic[T]):
    """Outcome of one task in a fail-soft join: a value or the exception it raised."""

    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(*coros: Awaitable[T]) -> list[Settled[T]]:
    """Run coroutines concurrently and wait for all of them.

    Individual failures never propagate to the caller; each slot in the
    returned list holds either the value or the exception, in input order.
    """
    outcomes = await asyncio.gather(*coros, return_exceptions=True)

    settled: list[Settled[T]] = []
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            if isinstance(outcome, (KeyboardInterrupt, SystemExit)):
                raise outcome
            settled.append(Settled(error=outcome))
        else:
            settled.append(Settled(value=outcome))
    return settled


async def in_daemon_thread(func: Callable[[], T], name: str | None = None) -> T:
    """Run a blocking callable on a fresh daemon thread and await its result.

    Unlike ``asyncio.to_thread``, abandoning the await (for example through
    ``wait_for``) leaves nothing for the event loop or interpreter shutdown to
    join; the thread finishes on its own and its result is discarded.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[T] = loop.create_future()

    def settle(value: T | None, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)  # type: ignore[arg-type]

    def worker() -> None:
        try:
            value = func()
        except BaseException as e:
            outcome: tuple[T | None, BaseException | None] = (None, e)
        else:
            outcome = (value, None)
        try:
            loop.call_soon_threadsafe(settle, *outcome)
        except RuntimeError:
            # Loop already closed: the caller stopped waiting long ago
            pass

    threading.Thread(target=worker, name=name, daemon=True).start()
    return await future


async def run_with_timeout(
    coro: Awaitable[T],
    timeout: float,
    timeout_message: str = "Operation timed out",
) -> T:
    """Run a coroutine with a timeout.

    Raises:
        TimeoutError: If the operation times out
    """
    from vtexdeploy.core.exceptions import TimeoutError

    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        raise TimeoutError(timeout_message, timeout_seconds=int(timeout))


def run_sync(coro: Awaitable[T]) -> T:
    """Run an async function synchronously.

    This is useful for integrating async code with Click commands and the
    synchronous orchestrator.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        # If we're already in an async context, create a new loop
        import concurrent.futures

        with concurrent.futures.ThreadPoolExecutor() as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    else:
        return asyncio.run(coro)
