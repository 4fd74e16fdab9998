"""Simple synchronous task utilities."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar


T = TypeVar("T")


class TaskTimeout(TimeoutError):
    """Raised when a bounded task does not finish in time."""


def run_in_thread(func: Callable[[], T]) -> T:
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(func)
        return future.result()


def run_with_timeout(func: Callable[[], T], timeout: float | None) -> T:
    """Run ``func`` on a worker thread and wait at most ``timeout`` seconds.

    A task that overruns keeps its worker until it returns; its result is
    discarded.
    """

    if timeout is None:
        return run_in_thread(func)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bounded-task")
    future = executor.submit(func)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        raise TaskTimeout(f"Task exceeded {timeout:g}s") from exc
    finally:
        executor.shutdown(wait=False)


__all__ = ["TaskTimeout", "run_in_thread", "run_with_timeout"]
