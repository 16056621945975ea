"""Test configuration and fixtures."""

import os

import pytest

# Set required environment variables for tests
os.environ["ENVIRONMENT"] = "testing"

from crm_backend.observability.logging import setup_testing_logging  # noqa: E402

setup_testing_logging()


class FakeClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def clock():
    """Create a controllable clock for breakers and rolling windows."""
    return FakeClock()
