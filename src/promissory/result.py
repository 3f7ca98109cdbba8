"""Result type for deferred outcomes.

A ``Result`` is exactly one of ``Success`` (holding ``value``) or ``Failure``
(holding ``error``). Both are frozen; the side a result does not carry reads
as ``None`` so callers can probe either accessor without branching.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from promissory.errors import ResultError

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = ["Failure", "Result", "Success", "capture"]


@dataclasses.dataclass(frozen=True, slots=True)
class Success[T]:
    """A successful outcome."""

    value: T

    @property
    def error(self) -> None:
        return None

    @property
    def is_success(self) -> bool:
        return True

    @property
    def is_failure(self) -> bool:
        return False

    def map[V](self, fn: Callable[[T], V]) -> Success[V]:
        return Success(fn(self.value))

    def map_error(self, fn: Callable[[Any], Any]) -> Success[T]:
        del fn
        return self

    def flat_map[R](self, fn: Callable[[T], R]) -> R:
        return fn(self.value)

    def fold[R](self, on_success: Callable[[T], R], on_failure: Callable[[Any], R]) -> R:
        del on_failure
        return on_success(self.value)

    def unwrap(self) -> T:
        return self.value


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[E]:
    """A failed outcome, containing the error."""

    error: E

    @property
    def value(self) -> None:
        return None

    @property
    def is_success(self) -> bool:
        return False

    @property
    def is_failure(self) -> bool:
        return True

    def map(self, fn: Callable[[Any], Any]) -> Failure[E]:
        del fn
        return self

    def map_error[F](self, fn: Callable[[E], F]) -> Failure[F]:
        return Failure(fn(self.error))

    def flat_map(self, fn: Callable[[Any], Any]) -> Failure[E]:
        del fn
        return self

    def fold[R](self, on_success: Callable[[Any], R], on_failure: Callable[[E], R]) -> R:
        del on_success
        return on_failure(self.error)

    def unwrap(self) -> Any:
        """Raise the error, wrapping non-exception payloads in ``ResultError``."""
        if isinstance(self.error, BaseException):
            raise self.error
        raise ResultError(self.error)


type Result[T, E] = Success[T] | Failure[E]


def capture[T](fn: Callable[..., T], *args: Any, **kwargs: Any) -> Result[T, Exception]:
    """Call *fn* and capture its return value or raised exception as a Result."""
    try:
        return Success(fn(*args, **kwargs))
    except Exception as exc:
        return Failure(exc)
