import sys
from pathlib import Path

import pytest

# Ensure `restaurant_ingest` is importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import FakeClassifier, FakePlacesClient, InMemoryStore  # noqa: E402


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def places():
    return FakePlacesClient()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def no_sleep(monkeypatch):
    """Record requested sleeps instead of waiting."""
    sleeps = []
    monkeypatch.setattr("time.sleep", lambda seconds: sleeps.append(seconds))
    return sleeps
