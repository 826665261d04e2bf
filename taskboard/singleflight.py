"""Single-flight coordination for coroutines.

Concurrent callers asking for the same key share one execution: the first
caller starts it, later callers await the same running task, and the entry
is dropped as soon as the task finishes so the next call starts afresh.
"""
import asyncio
from typing import Awaitable, Callable, Dict, TypeVar

T = TypeVar("T")


class SingleFlight:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._calls: Dict[str, "asyncio.Task"] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` for `key` unless a run is already in flight; either way return its result.

        A caller that is cancelled stops waiting but does not cancel the
        shared run.
        """
        async with self._lock:
            task = self._calls.get(key)
            if task is None:
                task = asyncio.ensure_future(self._run(key, fn))
                self._calls[key] = task
        return await asyncio.shield(task)

    async def _run(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        finally:
            self._calls.pop(key, None)
