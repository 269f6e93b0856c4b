"""Clock implementations."""

from datetime import datetime, timezone

from depot_kernel.domain.clock import DeterministicClock, SystemClock


def test_system_clock_is_utc_aware():
    assert SystemClock().now().tzinfo is timezone.utc


def test_deterministic_clock_holds_until_moved():
    clock = DeterministicClock()
    assert clock.now() == clock.now() == DeterministicClock.DEFAULT_START

    clock.advance(90)
    assert (clock.now() - DeterministicClock.DEFAULT_START).total_seconds() == 90

    new_year = datetime(2025, 1, 1, tzinfo=timezone.utc)
    clock.set_time(new_year)
    assert clock.now() == new_year
