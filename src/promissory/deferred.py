"""The deferred value: a single-assignment container for an eventual outcome.

A ``DeferredValue`` starts pending and is resolved exactly once, either to a
success value or to an error. Observers registered while it is pending are
queued and dispatched as one ordered batch onto the value's completion
context. Observers registered after resolution fire immediately on the
registering thread.

Example:
    d = DeferredValue()
    d.on_success(lambda v: v * 2).then(print)
    d.resolve_success(21)  # prints 42 on the completion context
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, Self

from promissory.chains import ErrorChain, HandlerKind, SuccessChain
from promissory.config import default_context
from promissory.errors import AnyError, SelfBlockingWaitError
from promissory.functional import compose, identity
from promissory.result import Failure, Success

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    import concurrent.futures

    from promissory.contexts import CompletionContext
    from promissory.result import Result

logger = logging.getLogger(__name__)

__all__ = ["DeferredValue", "ResultDeferred"]


def _invoke(handler: Callable[[Any], Any], payload: Any) -> None:
    """Run one handler; failures are logged so sibling handlers still run."""
    try:
        handler(payload)
    except Exception:
        logger.exception("Deferred value handler %r raised", handler)


class DeferredValue[T, E]:
    """Resolvable container for an eventual ``Success[T]`` or ``Failure[E]``.

    Thread-safe: resolution and handler registration are serialized by an
    internal lock, so a handler is either part of the resolution batch or
    fires immediately, never both.
    """

    def __init__(self, completion_context: CompletionContext | None = None) -> None:
        if completion_context is None:
            completion_context = default_context()
        self._context = completion_context
        self._lock = threading.Lock()
        self._state: Result[T, E] | None = None
        self._success_handlers: list[Callable[[T], Any]] = []
        self._error_handlers: list[Callable[[E], Any]] = []
        self._result_handlers: list[Callable[[Result[T, E]], Any]] = []

    # --- Construction helpers ---

    @classmethod
    def resolved(
        cls,
        result: Result[T, E],
        completion_context: CompletionContext | None = None,
    ) -> Self:
        """Create a deferred value that is already resolved to *result*."""
        deferred = cls(completion_context)
        deferred._state = result
        return deferred

    @classmethod
    def successful(
        cls, value: T, completion_context: CompletionContext | None = None
    ) -> Self:
        return cls.resolved(Success(value), completion_context)

    @classmethod
    def errored(
        cls, error: E, completion_context: CompletionContext | None = None
    ) -> Self:
        return cls.resolved(Failure(error), completion_context)

    @classmethod
    def new(
        cls,
        body: Callable[[Self], Any],
        completion_context: CompletionContext | None = None,
    ) -> Self:
        """Create a pending value, hand it to *body*, and return it."""
        deferred = cls(completion_context)
        body(deferred)
        return deferred

    @classmethod
    def from_future(
        cls,
        future: concurrent.futures.Future[T],
        completion_context: CompletionContext | None = None,
    ) -> DeferredValue[T, BaseException]:
        """Mirror a ``concurrent.futures.Future`` as a deferred value.

        A cancelled future resolves to its ``CancelledError``.
        """
        deferred: DeferredValue[T, BaseException] = DeferredValue(completion_context)

        def _settle(fut: concurrent.futures.Future[T]) -> None:
            try:
                value = fut.result()
            except BaseException as exc:
                deferred.resolve_error(exc)
            else:
                deferred.resolve_success(value)

        future.add_done_callback(_settle)
        return deferred

    # --- Inspection ---

    @property
    def completion_context(self) -> CompletionContext:
        return self._context

    @property
    def is_resolved(self) -> bool:
        return self._state is not None

    def peek(self) -> Result[T, E] | None:
        """Return the result if resolved, without waiting."""
        return self._state

    # --- Observation ---

    def on_success[O](self, handler: Callable[[T], O]) -> SuccessChain[O, T, E]:
        """Observe the success value.

        Fires immediately when already resolved to success; stays inert when
        resolved to an error.
        """
        return SuccessChain(self, handler)

    def on_error[O](self, handler: Callable[[E], O]) -> ErrorChain[O, T, E]:
        """Observe the error; mirror image of ``on_success``."""
        return ErrorChain(self, handler)

    def on_result(self, handler: Callable[[Result[T, E]], Any]) -> Self:
        """Observe the outcome whichever way it goes. Returns self."""
        with self._lock:
            result = self._state
            if result is None:
                self._result_handlers.append(handler)
                return self
        _invoke(handler, result)
        return self

    def _attach(self, kind: HandlerKind, handler: Callable[[Any], Any]) -> bool:
        """Queue *handler* if pending, or fire it now if resolved to *kind*.

        Returns True when the handler was queued.
        """
        with self._lock:
            result = self._state
            if result is None:
                if kind is HandlerKind.SUCCESS:
                    self._success_handlers.append(handler)
                else:
                    self._error_handlers.append(handler)
                return True
        if kind is HandlerKind.SUCCESS and isinstance(result, Success):
            _invoke(handler, result.value)
        elif kind is HandlerKind.ERROR and isinstance(result, Failure):
            _invoke(handler, result.error)
        return False

    def _replace(
        self,
        kind: HandlerKind,
        handler: Callable[[Any], Any],
        replacement: Callable[[Any], Any],
    ) -> bool:
        """Swap a queued handler for *replacement* at the same position.

        Returns False (and changes nothing) if *handler* is not queued.
        """
        with self._lock:
            handlers = (
                self._success_handlers
                if kind is HandlerKind.SUCCESS
                else self._error_handlers
            )
            for index, queued in enumerate(handlers):
                if queued is handler:
                    handlers[index] = replacement
                    return True
        return False

    # --- Resolution ---

    def resolve_success(self, value: T) -> None:
        """Resolve to *value*. Ignored when already resolved."""
        self.resolve(Success(value))

    def resolve_error(self, error: E) -> None:
        """Resolve to *error*. Ignored when already resolved."""
        self.resolve(Failure(error))

    def resolve(self, result: Result[T, E]) -> None:
        """Resolve to *result* and dispatch captured handlers in order."""
        with self._lock:
            if self._state is not None:
                logger.debug(
                    "Ignoring duplicate resolution of %r (already %r, got %r)",
                    self,
                    self._state,
                    result,
                )
                return
            self._state = result
            handlers: list[Callable[[Any], Any]]
            if isinstance(result, Success):
                handlers = list(self._success_handlers)
                payload: Any = result.value
            else:
                handlers = list(self._error_handlers)
                payload = result.error
            handlers.extend(
                _bind_result(handler, result) for handler in self._result_handlers
            )
            self._success_handlers = []
            self._error_handlers = []
            self._result_handlers = []

        if not handlers:
            return

        def _run_batch() -> None:
            for handler in handlers:
                _invoke(handler, payload)

        logger.debug("Dispatching %d handler(s) for %r", len(handlers), self)
        self._context.dispatch(_run_batch)

    # --- Transformation ---

    def nest[V](self, other: DeferredValue[V, E], mapper: Callable[[T], V]) -> None:
        """Resolve *other* from this value: success through *mapper*, errors as-is."""
        self.on_success(compose(mapper, other.resolve_success))
        self.on_error(other.resolve_error)

    def map[V](
        self,
        mapper: Callable[[T], V],
        completion_context: CompletionContext | None = None,
    ) -> DeferredValue[V, E]:
        """Return a deferred value holding ``mapper(value)``; errors pass through."""
        return DeferredValue.new(
            lambda target: self.nest(target, mapper), completion_context
        )

    def flat_map[V](
        self,
        mapper: Callable[[T], DeferredValue[V, E]],
        completion_context: CompletionContext | None = None,
    ) -> DeferredValue[V, E]:
        """Return a deferred value settled by the one *mapper* produces."""

        def _wire(target: DeferredValue[V, E]) -> None:
            self.on_success(mapper).then(lambda inner: inner.nest(target, identity))
            self.on_error(target.resolve_error)

        return DeferredValue.new(_wire, completion_context)

    def generalize_error(
        self, completion_context: CompletionContext | None = None
    ) -> DeferredValue[T, AnyError]:
        """Return a mirror of this value whose error is wrapped in ``AnyError``."""

        def _wire(target: DeferredValue[T, AnyError]) -> None:
            self.on_success(target.resolve_success)
            self.on_error(compose(AnyError, target.resolve_error))

        return DeferredValue.new(_wire, completion_context)

    # --- Waiting ---

    def wait(self, timeout: float | None = None) -> Result[T, E]:
        """Block until resolved and return the result.

        Raises:
            SelfBlockingWaitError: If still pending and the caller runs on this
                value's completion context, which would never get to deliver.
            TimeoutError: If *timeout* seconds pass without resolution.
        """
        result = self._state
        if result is not None:
            return result
        if self._context.is_current():
            raise SelfBlockingWaitError(
                "wait() called on the completion context of a pending deferred value",
                hint="Use on_result()/await from this context, or resolve on another one.",
            )
        done = threading.Event()
        self.on_result(lambda _: done.set())
        if not done.wait(timeout):
            raise TimeoutError(f"{self!r} not resolved within {timeout}s")
        result = self._state
        assert result is not None
        return result

    async def wait_async(self) -> Result[T, E]:
        """Await resolution from asyncio code without blocking the loop."""
        result = self._state
        if result is not None:
            return result
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Result[T, E]] = loop.create_future()

        def _deliver(outcome: Result[T, E]) -> None:
            if not future.done():
                future.set_result(outcome)

        self.on_result(lambda outcome: loop.call_soon_threadsafe(_deliver, outcome))
        return await future

    def __await__(self) -> Generator[Any, None, Result[T, E]]:
        return self.wait_async().__await__()

    def __repr__(self) -> str:
        state = "pending" if self._state is None else repr(self._state)
        return f"DeferredValue({state}, context={self._context!r})"


def _bind_result(
    handler: Callable[[Result[Any, Any]], Any], result: Result[Any, Any]
) -> Callable[[Any], Any]:
    """Adapt a result handler to the payload-taking shape of the batch."""

    def _call(_: Any) -> Any:
        return handler(result)

    return _call


type ResultDeferred[T] = DeferredValue[T, AnyError]
