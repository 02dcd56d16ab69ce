import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, amount: float) -> float:
        self.now += float(amount)
        return self.now


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("COACH_CLASSIFIER_URL", "")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")


@pytest.fixture
def clock() -> FakeClock:
    # coaching side: seconds
    return FakeClock(1000.0)


@pytest.fixture
def clock_ms() -> FakeClock:
    # transcript side: epoch milliseconds
    return FakeClock(1_700_000_000_000.0)
