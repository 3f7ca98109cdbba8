"""Exception hierarchy and error domains for promissory."""

from __future__ import annotations

from typing import Any, Never


class PromissoryError(Exception):
    """Base exception for all promissory errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(PromissoryError):
    """Configuration validation or resolution failed."""


class SelfBlockingWaitError(PromissoryError):
    """A blocking wait was requested on the context that must deliver the result."""


class ResultError(PromissoryError):
    """A failed result was unwrapped but its error is not an exception.

    The error payload is kept on ``error``.
    """

    def __init__(self, error: Any) -> None:
        super().__init__(f"Result failed with {error!r}")
        self.error = error


class APIError(PromissoryError):
    """HTTP fetch failed or the payload could not be decoded."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code
        self.url = url


class AnyError(PromissoryError):
    """Uniform error wrapper that erases heterogeneous error types.

    Wrapping an ``AnyError`` again returns the same instance, so composed
    stages never produce wrappers of wrappers.
    """

    error: Any

    def __new__(cls, error: Any) -> AnyError:
        if isinstance(error, AnyError):
            return error
        return super().__new__(cls)

    def __init__(self, error: Any) -> None:
        if error is self:
            # __new__ handed back the existing wrapper.
            return
        super().__init__(str(error))
        self.error = error
        if isinstance(error, BaseException):
            self.__cause__ = error

    def __repr__(self) -> str:
        return f"AnyError({self.error!r})"


class NoError(PromissoryError):
    """Empty error domain for deferred values that can never fail.

    The type exists only for annotations; it cannot be instantiated.
    """

    def __new__(cls, *args: Any, **kwargs: Any) -> Never:
        raise TypeError("NoError is uninhabited and cannot be instantiated")
