"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration and completion context
fixtures. Environment fixtures are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os

import pytest

from promissory.contexts import ImmediateContext, SerialContext

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_promissory_env(request, monkeypatch):
    """Clear PROMISSORY_* env vars so configuration starts from defaults.

    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("PROMISSORY_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Completion Contexts
# =============================================================================


@pytest.fixture
def immediate() -> ImmediateContext:
    """Context that runs handler batches inline on the resolving thread."""
    return ImmediateContext()


@pytest.fixture
def serial():
    """A dedicated single-thread completion context, closed after the test."""
    ctx = SerialContext("test-serial")
    yield ctx
    ctx.close()
