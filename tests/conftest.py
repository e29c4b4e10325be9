"""Shared pytest fixtures."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs


@pytest.fixture(autouse=True)
def log_events() -> list[dict]:
    """Capture structlog events instead of printing them."""
    with capture_logs() as events:
        yield events
