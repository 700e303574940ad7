"""Pytest configuration and fixtures for comic_vine_stores tests."""
import pytest

from comic_vine_stores import AdaptiveCapacityCalculator, clock

START_MS = 1_700_000_000_000


class FakeClock:
    """Replacement for clock.now_ms that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def fake_clock(monkeypatch) -> FakeClock:
    """Freeze store time at START_MS."""
    fake = FakeClock()
    monkeypatch.setattr(clock, "now_ms", fake)
    return fake


@pytest.fixture
def calculator() -> AdaptiveCapacityCalculator:
    """Calculator with default tunables."""
    return AdaptiveCapacityCalculator()
