"""HTTP adapter that produces deferred values.

Requests run on an executor (the shared background executor by default) and
resolve the returned ``DeferredValue`` with the decoded payload or an
``APIError``. Transport failures, non-2xx responses, unserializable bodies and
undecodable responses are all delivered through the error side; nothing is
raised to the caller.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Protocol, Self

import httpx

from promissory.deferred import DeferredValue
from promissory.errors import APIError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from concurrent.futures import Executor

    from promissory.contexts import CompletionContext

logger = logging.getLogger(__name__)

__all__ = [
    "DataRepresentable",
    "DataSerializable",
    "fetch",
    "fetch_json",
    "fetch_representable",
    "post",
    "post_representable",
]


class DataRepresentable(Protocol):
    """Anything that can be built from a raw HTTP response body."""

    @classmethod
    def from_bytes(cls, data: bytes) -> Self | None:
        """Return an instance, or None when *data* does not represent one."""
        ...


class DataSerializable(Protocol):
    """Anything that can be sent as a raw HTTP request body."""

    def to_bytes(self) -> bytes | None:
        """Return the body, or None when this value cannot be serialized."""
        ...


def _request[T](
    method: str,
    url: str,
    decode: Callable[[bytes], T | None],
    *,
    content: bytes | None,
    client: httpx.Client | None,
    params: Mapping[str, Any] | None,
    headers: Mapping[str, str] | None,
    executor: Executor | None,
    completion_context: CompletionContext | None,
) -> DeferredValue[T, APIError]:
    deferred: DeferredValue[T, APIError] = DeferredValue(completion_context)

    def _work() -> None:
        try:
            if client is None:
                with httpx.Client() as own_client:
                    response = own_client.request(
                        method, url, params=params, headers=headers, content=content
                    )
            else:
                response = client.request(
                    method, url, params=params, headers=headers, content=content
                )
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", method, url, exc)
            deferred.resolve_error(
                APIError(f"Request to {url} failed: {exc}", url=url)
            )
            return

        logger.debug("%s %s -> %d", method, url, response.status_code)
        if response.is_error:
            deferred.resolve_error(
                APIError(
                    f"HTTP {response.status_code} for {url}",
                    status_code=response.status_code,
                    url=url,
                )
            )
            return

        cause: Exception | None = None
        try:
            value = decode(response.content)
        except Exception as exc:
            value = None
            cause = exc
            logger.debug("Decoding %s failed: %s", url, exc)
        if value is None:
            error = APIError(
                f"Response from {url} could not be decoded",
                hint="Check that the endpoint returns the expected representation.",
                status_code=response.status_code,
                url=url,
            )
            error.__cause__ = cause
            deferred.resolve_error(error)
            return
        deferred.resolve_success(value)

    if executor is None:
        from promissory.config import background_executor

        executor = background_executor()
    executor.submit(_work)
    return deferred


def fetch[T](
    url: str,
    decode: Callable[[bytes], T | None],
    *,
    client: httpx.Client | None = None,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    executor: Executor | None = None,
    completion_context: CompletionContext | None = None,
) -> DeferredValue[T, APIError]:
    """GET *url* and resolve with ``decode(body)``.

    Args:
        url: Absolute URL, or a path relative to *client*'s ``base_url``.
        decode: Turns the body into a value; returning None or raising
            resolves to an ``APIError`` (the exception becomes its cause).
        client: Optional shared ``httpx.Client``; a throwaway one is used otherwise.
        params: Query parameters.
        headers: Extra request headers.
        executor: Where the blocking request runs.
        completion_context: Context for the returned value's handlers.
    """
    return _request(
        "GET",
        url,
        decode,
        content=None,
        client=client,
        params=params,
        headers=headers,
        executor=executor,
        completion_context=completion_context,
    )


def post[T](
    url: str,
    body: DataSerializable,
    decode: Callable[[bytes], T | None],
    *,
    client: httpx.Client | None = None,
    params: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
    executor: Executor | None = None,
    completion_context: CompletionContext | None = None,
) -> DeferredValue[T, APIError]:
    """POST ``body.to_bytes()`` to *url* and resolve like ``fetch``.

    A body that serializes to None resolves to an ``APIError`` without sending
    anything.
    """
    content = body.to_bytes()
    if content is None:
        return DeferredValue.errored(
            APIError(
                f"Request body for {url} could not be serialized",
                hint=f"{type(body).__name__}.to_bytes() returned None.",
                url=url,
            ),
            completion_context,
        )
    return _request(
        "POST",
        url,
        decode,
        content=content,
        client=client,
        params=params,
        headers=headers,
        executor=executor,
        completion_context=completion_context,
    )


def fetch_representable[R: DataRepresentable](
    url: str,
    kind: type[R],
    **kwargs: Any,
) -> DeferredValue[R, APIError]:
    """Fetch *url* and build a *kind* from the body via ``kind.from_bytes``."""
    return fetch(url, kind.from_bytes, **kwargs)


def post_representable[R: DataRepresentable](
    url: str,
    body: DataSerializable,
    kind: type[R],
    **kwargs: Any,
) -> DeferredValue[R, APIError]:
    """Post *body* to *url* and build a *kind* from the response body."""
    return post(url, body, kind.from_bytes, **kwargs)


def fetch_json(url: str, **kwargs: Any) -> DeferredValue[Any, APIError]:
    """Fetch *url* and decode the body as JSON."""
    return fetch(url, json.loads, **kwargs)
