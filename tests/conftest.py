# tests/conftest.py
"""Shared test fixtures and helpers.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/

Time-dependent components all take a Clock; tests drive them with MockClock
instead of sleeping.
"""

import os
from collections.abc import Iterator
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from lumberjack.context import TraceContextStore
from lumberjack.core.clock import MockClock
from lumberjack.core.config import _ENV_FALLBACKS, LumberjackSettings, build_settings
from lumberjack.core.environment import _ENV_VAR_MAPPINGS
from lumberjack.testing import MockExporter

# =============================================================================
# Hypothesis profiles
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Environment isolation
# =============================================================================

_LUMBERJACK_ENV_VARS = (
    *_ENV_FALLBACKS.values(),
    "LUMBERJACK_PROJECT_NAME",
    *_ENV_VAR_MAPPINGS["commit_sha"],
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's or CI's environment out of settings fallbacks."""
    for name in _LUMBERJACK_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# Shared fixtures
# =============================================================================


@pytest.fixture
def mock_clock() -> MockClock:
    """Clock starting at a fixed epoch (2023-11-14T22:13:20Z)."""
    return MockClock(start=1_700_000_000.0)


@pytest.fixture
def mock_exporter() -> MockExporter:
    return MockExporter()


@pytest.fixture
def context_store() -> TraceContextStore:
    """Isolated context store so tests never share ambient state."""
    return TraceContextStore()


@pytest.fixture
def make_settings() -> Iterator[Any]:
    """Factory for settings with test-friendly defaults.

    Uses the mock exporter, a large batch size and no replay, so nothing
    flushes unless the test asks for it.
    """

    def _make(**overrides: Any) -> LumberjackSettings:
        values: dict[str, Any] = {
            "project_name": "test-project",
            "exporter": "mock",
            "batch_size": 1000,
            "batch_age_seconds": 3600.0,
            "flush_interval_seconds": 3600.0,
            "capture_unhandled": False,
            "enable_session_replay": False,
        }
        values.update(overrides)
        return build_settings(**values)

    yield _make
