from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Self

import httpx
import pytest

from promissory.contexts import ImmediateContext
from promissory.errors import APIError
from promissory.http import (
    fetch,
    fetch_json,
    fetch_representable,
    post,
    post_representable,
)
from promissory.result import Failure, Success

pytestmark = pytest.mark.unit


@dataclass(frozen=True)
class Poster:
    """Tiny DataRepresentable used as a decode target."""

    title: str

    @classmethod
    def from_bytes(cls, data: bytes) -> Self | None:
        text = data.decode()
        if not text.startswith("poster:"):
            return None
        return cls(text.removeprefix("poster:"))


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/movies":
        page = request.url.params.get("page", "1")
        return httpx.Response(200, json={"page": int(page), "results": ["a", "b"]})
    if path == "/poster":
        return httpx.Response(200, content=b"poster:Metropolis")
    if path == "/garbage":
        return httpx.Response(200, content=b"\x00not json")
    if path == "/echo" and request.method == "POST":
        return httpx.Response(201, content=b"poster:" + request.content)
    if path == "/boom":
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.Response(404, text="missing")


@pytest.fixture
def client():
    with httpx.Client(
        transport=httpx.MockTransport(_handler), base_url="https://api.test"
    ) as c:
        yield c


@pytest.fixture
def pool():
    with ThreadPoolExecutor(max_workers=2) as executor:
        yield executor


def test_fetch_json_success(client: httpx.Client, pool: ThreadPoolExecutor) -> None:
    d = fetch_json(
        "/movies",
        client=client,
        params={"page": 2},
        executor=pool,
        completion_context=ImmediateContext(),
    )
    assert d.wait(timeout=2) == Success({"page": 2, "results": ["a", "b"]})


def test_fetch_representable(client: httpx.Client, pool: ThreadPoolExecutor) -> None:
    d = fetch_representable(
        "/poster", Poster, client=client, executor=pool,
        completion_context=ImmediateContext(),
    )
    assert d.wait(timeout=2) == Success(Poster("Metropolis"))


@pytest.mark.parametrize(
    ("path", "status", "fragment"),
    [
        ("/nowhere", 404, "HTTP 404"),
        ("/garbage", 200, "could not be decoded"),
        ("/boom", None, "failed"),
    ],
)
def test_fetch_failures_resolve_to_api_error(
    client: httpx.Client,
    pool: ThreadPoolExecutor,
    path: str,
    status: int | None,
    fragment: str,
) -> None:
    d = fetch_json(
        path, client=client, executor=pool, completion_context=ImmediateContext()
    )
    result = d.wait(timeout=2)

    assert isinstance(result, Failure)
    assert isinstance(result.error, APIError)
    assert result.error.status_code == status
    assert result.error.url == path
    assert fragment in str(result.error)


def test_decoder_returning_none_is_an_error(
    client: httpx.Client, pool: ThreadPoolExecutor
) -> None:
    d = fetch(
        "/poster",
        lambda _: None,
        client=client,
        executor=pool,
        completion_context=ImmediateContext(),
    )
    result = d.wait(timeout=2)
    assert isinstance(result, Failure)
    assert result.error.hint


def test_fetch_composes_with_map(client: httpx.Client, pool: ThreadPoolExecutor) -> None:
    ctx = ImmediateContext()
    titles = fetch_json("/movies", client=client, executor=pool, completion_context=ctx).map(
        lambda body: [t.upper() for t in body["results"]], ctx
    )
    assert titles.wait(timeout=2) == Success(["A", "B"])


def test_decoder_raising_any_exception_resolves_to_api_error(
    client: httpx.Client, pool: ThreadPoolExecutor
) -> None:
    def _decode(_: bytes) -> int:
        raise TypeError("unexpected payload shape")

    d = fetch(
        "/poster",
        _decode,
        client=client,
        executor=pool,
        completion_context=ImmediateContext(),
    )
    result = d.wait(timeout=2)

    assert isinstance(result, Failure)
    assert isinstance(result.error, APIError)
    assert isinstance(result.error.__cause__, TypeError)
    assert result.error.status_code == 200


@dataclass(frozen=True)
class Draft:
    """Tiny DataSerializable used as a request body."""

    title: str | None

    def to_bytes(self) -> bytes | None:
        return None if self.title is None else self.title.encode()


def test_post_sends_serialized_body(client: httpx.Client, pool: ThreadPoolExecutor) -> None:
    d = post_representable(
        "/echo",
        Draft("Nosferatu"),
        Poster,
        client=client,
        executor=pool,
        completion_context=ImmediateContext(),
    )
    assert d.wait(timeout=2) == Success(Poster("Nosferatu"))


def test_post_with_unserializable_body_fails_without_request(
    pool: ThreadPoolExecutor,
) -> None:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    with httpx.Client(transport=httpx.MockTransport(_record)) as recording:
        d = post(
            "https://api.test/echo",
            Draft(None),
            bytes,
            client=recording,
            executor=pool,
            completion_context=ImmediateContext(),
        )
        result = d.wait(timeout=2)

    assert isinstance(result, Failure)
    assert "could not be serialized" in str(result.error)
    assert seen == []
