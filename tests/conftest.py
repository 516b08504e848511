"""Shared test fixtures."""

import pytest
from fakes import FakeDongleTransport


@pytest.fixture
def fake_transport() -> FakeDongleTransport:
    """A fake dongle that answers reads and acknowledges writes."""
    return FakeDongleTransport()
