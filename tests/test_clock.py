"""
Virtual Clock Tests

Checks carry normalization and the once-per-crossing cadence predicates.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.clock import NANOS_PER_SECOND, VirtualClock


def test_advance_carries_into_seconds():
    clock = VirtualClock()
    clock.advance(600_000_000)
    clock.advance(600_000_000)

    assert clock.seconds == 1
    assert clock.nanoseconds == 200_000_000
    assert clock.now_ns == 1_200_000_000

    clock.advance(3 * NANOS_PER_SECOND + 800_000_000)
    assert (clock.seconds, clock.nanoseconds) == (5, 0)
    assert str(clock) == "5:000000000"


def test_negative_advance_rejected():
    clock = VirtualClock()
    with pytest.raises(ValueError):
        clock.advance(-1)


def test_detection_fires_once_per_boundary():
    clock = VirtualClock(detect_interval_ns=NANOS_PER_SECOND)
    fired = []
    for _ in range(250):
        clock.advance(10_000_000)
        if clock.due_for_detection():
            fired.append(clock.now_ns)

    assert fired == [NANOS_PER_SECOND, 2 * NANOS_PER_SECOND]


def test_large_jump_fires_once():
    clock = VirtualClock(detect_interval_ns=100, report_interval_ns=50)
    clock.advance(1_000)

    assert clock.due_for_detection()
    assert not clock.due_for_detection(), "Skipped boundaries do not queue up"
    assert clock.due_for_report()
    assert not clock.due_for_report()


def test_report_and_detection_are_independent():
    clock = VirtualClock(detect_interval_ns=1_000, report_interval_ns=500)
    clock.advance(500)
    assert clock.due_for_report()
    assert not clock.due_for_detection()

    clock.advance(500)
    assert clock.due_for_report()
    assert clock.due_for_detection()


def test_nothing_due_at_time_zero():
    clock = VirtualClock()
    assert not clock.due_for_detection()
    assert not clock.due_for_report()


def test_until_next_deadline():
    clock = VirtualClock(detect_interval_ns=1_000, report_interval_ns=300)
    assert clock.until_next_deadline() == 300
    clock.advance(250)
    assert clock.until_next_deadline() == 50
    clock.advance(650)
    assert clock.until_next_deadline() == 100


def test_reached_duration():
    clock = VirtualClock()
    clock.advance(NANOS_PER_SECOND - 1)
    assert not clock.reached(1)
    clock.advance(1)
    assert clock.reached(1)


def test_intervals_must_be_positive():
    with pytest.raises(ValueError):
        VirtualClock(detect_interval_ns=0)
