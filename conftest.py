import os

import pytest


@pytest.fixture(autouse=True)
def clear_relay_environment(monkeypatch):
    """Remove RELAY_* variables so the host environment cannot leak into tests."""
    for name in list(os.environ):
        if name.startswith("RELAY_"):
            monkeypatch.delenv(name, raising=False)
    yield
