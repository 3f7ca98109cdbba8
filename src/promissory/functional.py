"""Small function-composition helpers used across the deferred value API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = ["compose", "identity", "pipe"]


def identity[T](value: T) -> T:
    """Return *value* unchanged."""
    return value


def compose[A, B, C](first: Callable[[A], B], second: Callable[[B], C]) -> Callable[[A], C]:
    """Return a function that applies *first* and feeds its output to *second*."""

    def composed(value: A) -> C:
        return second(first(value))

    composed.__qualname__ = f"compose({_name(first)}, {_name(second)})"
    return composed


def pipe(value: Any, *functions: Callable[[Any], Any]) -> Any:
    """Thread *value* through *functions* from left to right."""
    for fn in functions:
        value = fn(value)
    return value


def _name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)
