"""Completion contexts: where resolved handlers run.

A deferred value dispatches each resolution as one batch onto its completion
context. Contexts also report whether the calling thread is the one that
executes their batches, which lets ``DeferredValue.wait`` refuse to block the
thread it is waiting on.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Executor, ThreadPoolExecutor
import logging
import threading
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

__all__ = [
    "AsyncioContext",
    "CompletionContext",
    "ExecutorContext",
    "ImmediateContext",
    "SerialContext",
]


@runtime_checkable
class CompletionContext(Protocol):
    """Execution context on which handler batches are invoked."""

    def dispatch(self, fn: Callable[[], None]) -> None:
        """Schedule *fn* to run on this context."""
        ...

    def is_current(self) -> bool:
        """Return True when called from a thread that runs this context's work."""
        ...


class ImmediateContext:
    """Run batches inline on the resolving thread.

    Never reports itself as current: the resolver is always another caller,
    so waiting cannot starve it.
    """

    name = "immediate"

    def dispatch(self, fn: Callable[[], None]) -> None:
        fn()

    def is_current(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ImmediateContext()"


class ExecutorContext:
    """Submit batches to a ``concurrent.futures.Executor``.

    Threads are marked as current only while they execute one of this
    context's batches.
    """

    def __init__(self, executor: Executor, *, name: str = "executor") -> None:
        self._executor = executor
        self._local = threading.local()
        self.name = name

    @property
    def executor(self) -> Executor:
        return self._executor

    def dispatch(self, fn: Callable[[], None]) -> None:
        self._executor.submit(self._run, fn)

    def is_current(self) -> bool:
        return getattr(self._local, "depth", 0) > 0

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, fn: Callable[[], None]) -> None:
        self._local.depth = getattr(self._local, "depth", 0) + 1
        try:
            fn()
        except Exception:
            logger.exception("Completion batch failed on %s", self.name)
        finally:
            self._local.depth -= 1

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class SerialContext(ExecutorContext):
    """Named single-thread queue; batches run one at a time in submission order."""

    def __init__(self, name: str = "main") -> None:
        super().__init__(
            ThreadPoolExecutor(max_workers=1, thread_name_prefix=name), name=name
        )

    def close(self) -> None:
        self.shutdown(wait=True)


class AsyncioContext:
    """Hand batches to an asyncio event loop via ``call_soon_threadsafe``.

    Defaults to the running loop, so construct it from inside a coroutine
    when no loop is passed.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        self.name = "asyncio"

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def dispatch(self, fn: Callable[[], None]) -> None:
        self._loop.call_soon_threadsafe(fn)

    def is_current(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def __repr__(self) -> str:
        return f"AsyncioContext(loop={self._loop!r})"
