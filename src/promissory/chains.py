"""Chain builders returned by ``DeferredValue.on_success`` / ``on_error``.

A chain wraps one handler stage installed on a deferred value and lets callers
compose further steps fluently:

    d.on_success(parse).then(validate).then(store).on_error(report)

While the value is pending, ``then`` swaps the queued stage for a single
composed stage in the same queue position, so the whole pipeline runs as one
handler. Calling ``then`` again on a chain whose stage was already swapped
queues a second composition of its own. Once a stage has fired (or is being
dispatched), later steps are applied to its output instead of re-running it.

Chains keep only a weak reference to their deferred value.
"""

from __future__ import annotations

import enum
import threading
from typing import TYPE_CHECKING, Any, Self
import weakref

from promissory.functional import compose, identity

if TYPE_CHECKING:
    from collections.abc import Callable

    from promissory.deferred import DeferredValue

__all__ = ["ErrorChain", "HandlerKind", "SuccessChain"]

_UNSET: Any = object()


class HandlerKind(enum.Enum):
    """Which handler collection a registration targets."""

    SUCCESS = "success"
    ERROR = "error"


class _Stage:
    """A handler whose output later steps can subscribe to."""

    __slots__ = ("_followers", "_output", "handler", "lock", "replaced")

    def __init__(self, handler: Callable[[Any], Any]) -> None:
        self.handler = handler
        self.lock = threading.Lock()
        #: Set once a composed stage has taken this one's queue slot.
        self.replaced = False
        self._output: Any = _UNSET
        self._followers: list[Callable[[Any], Any]] = []

    def __call__(self, value: Any) -> Any:
        output = self.handler(value)
        with self.lock:
            self._output = output
            followers, self._followers = self._followers, []
        for follower in followers:
            follower(output)
        return output

    def follow(self, follower: Callable[[Any], Any]) -> None:
        """Run *follower* on this stage's output, now or once it exists."""
        with self.lock:
            output = self._output
            if output is _UNSET:
                self._followers.append(follower)
                return
        follower(output)

    def __repr__(self) -> str:
        return f"_Stage({getattr(self.handler, '__qualname__', self.handler)!r})"


class _Chain[O, T, E]:
    """Shared mechanics of success and error chains."""

    _kind: HandlerKind

    def __init__(self, deferred: DeferredValue[T, E], handler: Callable[[Any], O]) -> None:
        self._deferred_ref: weakref.ref[DeferredValue[T, E]] = weakref.ref(deferred)
        self._stage = _Stage(handler)
        deferred._attach(self._kind, self._stage)

    @classmethod
    def _wrapping(
        cls, deferred_ref: weakref.ref[DeferredValue[T, E]], stage: _Stage
    ) -> Self:
        """Build a chain around a stage that is already wired up."""
        chain = cls.__new__(cls)
        chain._deferred_ref = deferred_ref
        chain._stage = stage
        return chain

    @property
    def deferred(self) -> DeferredValue[T, E]:
        """The originating deferred value.

        Raises:
            ReferenceError: If it has already been garbage collected.
        """
        deferred = self._deferred_ref()
        if deferred is None:
            raise ReferenceError("the deferred value behind this chain no longer exists")
        return deferred

    @property
    def handler(self) -> Callable[[Any], O]:
        return self._stage.handler

    def _then(self, next_handler: Callable[[O], Any]) -> Any:
        stage = self._stage
        composed = compose(stage.handler, next_handler)
        deferred = self._deferred_ref()
        if deferred is None:
            # Orphaned: nothing will ever resolve this stage.
            return type(self)._wrapping(self._deferred_ref, _Stage(composed))

        # Lock order is stage, then deferred value.
        with stage.lock:
            replaced = stage.replaced
            if not replaced:
                swapped = _Stage(composed)
                if deferred._replace(self._kind, stage, swapped):
                    stage.replaced = True
                    return type(self)._wrapping(self._deferred_ref, swapped)

        if replaced:
            # The queue slot belongs to an earlier composition; queue our own.
            return type(self)(deferred, composed)
        # Fired, in flight or inert: continue from this stage's output.
        following = _Stage(next_handler)
        stage.follow(following)
        return type(self)._wrapping(self._deferred_ref, following)


class SuccessChain[O, T, E](_Chain[O, T, E]):
    """Builder over a success handler of type ``T -> O``."""

    _kind = HandlerKind.SUCCESS

    def then[N](self, handler: Callable[[O], N]) -> SuccessChain[N, T, E]:
        """Feed this chain's output into *handler*."""
        return self._then(handler)

    def and_[N](self, handler: Callable[[T], N]) -> SuccessChain[N, T, E]:
        """Register an independent sibling success handler."""
        return self.deferred.on_success(handler)

    def on_error[N](self, handler: Callable[[E], N]) -> ErrorChain[N, T, E]:
        """Register an error handler on the same deferred value."""
        return self.deferred.on_error(handler)

    @property
    def future(self) -> DeferredValue[Any, E]:
        """Flatten a handler that returns a deferred value.

        Returns a new deferred value that settles with the inner value's
        outcome, or with this chain's source error. Extends the handler the
        same way ``then`` does.
        """
        from promissory.deferred import DeferredValue

        source = self.deferred
        target: DeferredValue[Any, E] = DeferredValue(source.completion_context)
        self.then(lambda inner: inner.nest(target, identity))
        source.on_error(target.resolve_error)
        return target


class ErrorChain[O, T, E](_Chain[O, T, E]):
    """Builder over an error handler of type ``E -> O``."""

    _kind = HandlerKind.ERROR

    def then[N](self, handler: Callable[[O], N]) -> ErrorChain[N, T, E]:
        """Feed this chain's output into *handler*."""
        return self._then(handler)

    def and_[N](self, handler: Callable[[E], N]) -> ErrorChain[N, T, E]:
        """Register an independent sibling error handler."""
        return self.deferred.on_error(handler)

    def on_success[N](self, handler: Callable[[T], N]) -> SuccessChain[N, T, E]:
        """Register a success handler on the same deferred value."""
        return self.deferred.on_success(handler)
