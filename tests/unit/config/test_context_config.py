from __future__ import annotations

import threading

import pytest

from promissory import config
from promissory.config import (
    background_executor,
    context_for,
    context_scope,
    default_context,
    load_env,
    resolve_config,
)
from promissory.contexts import ExecutorContext, ImmediateContext
from promissory.deferred import DeferredValue
from promissory.errors import ConfigurationError

pytestmark = pytest.mark.unit


def test_defaults() -> None:
    cfg = resolve_config()
    assert cfg.default_context == "background"
    assert cfg.background_workers == 4
    assert cfg.thread_name_prefix == "promissory"


def test_env_values_are_coerced(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMISSORY_DEFAULT_CONTEXT", " Immediate ")
    monkeypatch.setenv("PROMISSORY_BACKGROUND_WORKERS", "2")
    monkeypatch.setenv("PROMISSORY_SOMETHING_ELSE", "ignored")

    assert load_env() == {"default_context": " Immediate ", "background_workers": 2}
    cfg = resolve_config()
    assert cfg.default_context == "immediate"
    assert cfg.background_workers == 2


def test_overrides_win_over_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMISSORY_DEFAULT_CONTEXT", "immediate")
    cfg = resolve_config({"default_context": "background"})
    assert cfg.default_context == "background"


@pytest.mark.parametrize(
    "overrides",
    [
        {"default_context": "main-thread"},
        {"background_workers": 0},
        {"thread_name_prefix": "   "},
        {"unknown_field": True},
    ],
)
def test_invalid_values_raise_configuration_error(overrides: dict) -> None:
    with pytest.raises(ConfigurationError) as exc:
        resolve_config(overrides)
    assert "Configuration validation failed" in str(exc.value)
    assert exc.value.hint


def test_background_context_is_shared_and_named() -> None:
    cfg = resolve_config()
    first = context_for(cfg)
    second = context_for(resolve_config())

    assert isinstance(first, ExecutorContext)
    assert first is second
    assert first.name == "background"
    assert background_executor() is first.executor


def test_background_workers_use_configured_prefix() -> None:
    names: list[str] = []
    done = threading.Event()
    d: DeferredValue[int, str] = DeferredValue()

    d.on_success(lambda _: names.append(threading.current_thread().name)).then(
        lambda _: done.set()
    )
    d.resolve_success(1)

    assert done.wait(2)
    assert names[0].startswith("promissory")


def test_default_context_follows_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMISSORY_DEFAULT_CONTEXT", "immediate")
    assert isinstance(default_context(), ImmediateContext)


def test_context_scope_overrides_and_restores() -> None:
    outer = default_context()
    custom = ImmediateContext()

    with context_scope(custom) as active:
        assert active is custom
        assert default_context() is custom
        assert DeferredValue().completion_context is custom
        with context_scope("background") as nested:
            assert isinstance(nested, ExecutorContext)
            assert default_context() is nested
        assert default_context() is custom

    assert default_context() is outer


def test_context_scope_is_thread_local() -> None:
    seen: list[object] = []

    with context_scope(ImmediateContext()):
        worker = threading.Thread(target=lambda: seen.append(default_context()))
        worker.start()
        worker.join()

    assert isinstance(seen[0], ExecutorContext)


def test_default_context_validates_once_per_env_state(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[object] = []
    real_resolve = config.resolve_config

    def _counting_resolve(*args, **kwargs):
        calls.append(args)
        return real_resolve(*args, **kwargs)

    monkeypatch.setattr(config, "resolve_config", _counting_resolve)
    config._cached_config.cache_clear()

    for _ in range(5):
        DeferredValue().map(str)
    assert len(calls) == 1

    monkeypatch.setenv("PROMISSORY_DEFAULT_CONTEXT", "immediate")
    assert isinstance(default_context(), ImmediateContext)
    assert len(calls) == 2
