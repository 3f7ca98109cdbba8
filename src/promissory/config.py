"""Configuration schema, resolution and the default completion context.

Resolution follows ``defaults < env < overrides``:

- Defaults come from the ``Settings`` schema.
- Environment variables use the ``PROMISSORY_`` prefix
  (``PROMISSORY_DEFAULT_CONTEXT=immediate``). A ``.env`` file is loaded once.
- Overrides are passed programmatically to ``resolve_config``.

The resolved ``FrozenConfig`` decides which completion context a deferred value
gets when none is passed. ``context_scope`` swaps that default for a block of
code without touching global state.
"""

from __future__ import annotations

from contextlib import contextmanager
import contextvars
from dataclasses import dataclass
from functools import cache
import logging
import os
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from promissory.contexts import CompletionContext, ExecutorContext, ImmediateContext
from promissory.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Generator, Mapping
    from concurrent.futures import Executor

logger = logging.getLogger(__name__)

ENV_PREFIX = "PROMISSORY_"

ContextName = Literal["background", "immediate"]


class Settings(BaseModel):
    """Schema for configuration validation and defaults."""

    #: Completion context used when a deferred value is created without one.
    default_context: ContextName = Field(default="background")
    #: Worker threads of the shared background context.
    background_workers: int = Field(default=4, ge=1)
    thread_name_prefix: str = Field(default="promissory", min_length=1)

    model_config = {"extra": "forbid"}

    @field_validator("default_context", mode="before")
    @classmethod
    def normalize_context(cls, v: Any) -> Any:
        """Accept any casing and surrounding whitespace for context names."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("thread_name_prefix", mode="before")
    @classmethod
    def strip_prefix(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v


@dataclass(frozen=True)
class FrozenConfig:
    """Immutable, validated configuration."""

    default_context: ContextName
    background_workers: int
    thread_name_prefix: str


# --- Environment loading ---

_DOTENV_LOADED: bool = False


def _try_load_dotenv() -> None:
    """Load a ``.env`` file once per process."""
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    from dotenv import load_dotenv

    load_dotenv()
    _DOTENV_LOADED = True


def _coerce_env_value(raw: str, target: Any) -> Any:
    if target is bool:
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if target is int:
        try:
            return int(raw.strip())
        except ValueError:
            return raw
    return raw


def load_env() -> dict[str, Any]:
    """Read ``PROMISSORY_*`` variables into a dict of known settings fields."""
    config: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        info = Settings.model_fields.get(field_name)
        if info is None:
            logger.debug("Ignoring unknown environment variable %s", key)
            continue
        config[field_name] = _coerce_env_value(value, info.annotation)
    return config


# --- Resolution ---


def resolve_config(overrides: Mapping[str, Any] | None = None) -> FrozenConfig:
    """Resolve configuration from defaults, environment and overrides.

    Raises:
        ConfigurationError: If the merged values fail validation.
    """
    _try_load_dotenv()
    merged = {**load_env(), **(overrides or {})}
    try:
        settings = Settings.model_validate(merged)
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(part) for part in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        if msg.startswith("Value error, "):
            msg = msg[13:]
        raise ConfigurationError(
            f"Configuration validation failed: {loc}: {msg}",
            hint=f"Check {ENV_PREFIX}{loc.upper()} or the override passed for {loc!r}.",
        ) from e
    return FrozenConfig(**settings.model_dump())


# --- Default completion context ---

_SCOPED_CONTEXT: contextvars.ContextVar[CompletionContext | None] = (
    contextvars.ContextVar("promissory_completion_context", default=None)
)


@cache
def _background_context(workers: int, prefix: str) -> ExecutorContext:
    from concurrent.futures import ThreadPoolExecutor

    return ExecutorContext(
        ThreadPoolExecutor(max_workers=workers, thread_name_prefix=prefix),
        name="background",
    )


def context_for(cfg: FrozenConfig) -> CompletionContext:
    """Return the completion context named by *cfg*."""
    if cfg.default_context == "immediate":
        return ImmediateContext()
    return _background_context(cfg.background_workers, cfg.thread_name_prefix)


def _env_snapshot() -> tuple[tuple[str, str], ...]:
    return tuple(
        sorted(
            (key, value)
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        )
    )


# Keyed on the PROMISSORY_* environment so validation runs once per distinct state.
@cache
def _cached_config(_env: tuple[tuple[str, str], ...]) -> FrozenConfig:
    return resolve_config()


def _current_config() -> FrozenConfig:
    _try_load_dotenv()
    return _cached_config(_env_snapshot())


def default_context() -> CompletionContext:
    """Return the completion context used when none is given explicitly.

    A context installed by ``context_scope`` wins; otherwise the resolved
    configuration decides (``"background"`` by default).
    """
    scoped = _SCOPED_CONTEXT.get()
    if scoped is not None:
        return scoped
    return context_for(_current_config())


@contextmanager
def context_scope(
    context: CompletionContext | ContextName,
) -> Generator[CompletionContext]:
    """Use *context* as the default completion context inside the block.

    Accepts a context instance or a context name. Thread- and task-local.

    Example:
        with context_scope("immediate"):
            d = DeferredValue()
    """
    if isinstance(context, str):
        context = context_for(resolve_config({"default_context": context}))
    token = _SCOPED_CONTEXT.set(context)
    try:
        yield context
    finally:
        _SCOPED_CONTEXT.reset(token)


def background_executor() -> Executor:
    """Return the shared executor behind the configured background context."""
    cfg = _current_config()
    return _background_context(cfg.background_workers, cfg.thread_name_prefix).executor
