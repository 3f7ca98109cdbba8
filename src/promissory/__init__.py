"""promissory: thread-safe deferred values with fluent, callback-free chaining.

Public API:
    - DeferredValue: single-assignment container for an eventual outcome
    - Success / Failure: the Result of a deferred value
    - SuccessChain / ErrorChain: builders returned by on_success / on_error
    - Completion contexts: ImmediateContext, ExecutorContext, SerialContext, AsyncioContext
    - resolve_config / context_scope: configuration and the default context
"""

from __future__ import annotations

import logging

from promissory.chains import ErrorChain, SuccessChain
from promissory.config import (
    FrozenConfig,
    Settings,
    context_scope,
    default_context,
    resolve_config,
)
from promissory.contexts import (
    AsyncioContext,
    CompletionContext,
    ExecutorContext,
    ImmediateContext,
    SerialContext,
)
from promissory.deferred import DeferredValue, ResultDeferred
from promissory.errors import (
    AnyError,
    APIError,
    ConfigurationError,
    NoError,
    PromissoryError,
    ResultError,
    SelfBlockingWaitError,
)
from promissory.functional import compose, identity, pipe
from promissory.result import Failure, Result, Success, capture

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("promissory")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("promissory").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "AnyError",
    "AsyncioContext",
    "CompletionContext",
    "ConfigurationError",
    "DeferredValue",
    "ErrorChain",
    "ExecutorContext",
    "Failure",
    "FrozenConfig",
    "ImmediateContext",
    "NoError",
    "PromissoryError",
    "Result",
    "ResultDeferred",
    "ResultError",
    "SelfBlockingWaitError",
    "SerialContext",
    "Settings",
    "Success",
    "SuccessChain",
    "capture",
    "compose",
    "context_scope",
    "default_context",
    "identity",
    "pipe",
    "resolve_config",
]
