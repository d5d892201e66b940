"""
Deadlock Recovery Tests

Checks victim selection order and the terminate-then-redetect loop.
"""

import sys
from pathlib import Path

import numpy as np

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from algorithms.detection import detect_deadlock
from algorithms.recovery import recover_from_deadlock, select_victim
from models.ledger import ResourceLedger, SlotState


def test_select_victim_lowest_index():
    assert select_victim([4, 2, 7]) == 2
    assert select_victim([]) == -1


def test_empty_deadlock_set_takes_no_action():
    ledger = ResourceLedger([1], 1)
    ledger.activate(0)
    ledger.request_resource(0, 0, 1)

    result = recover_from_deadlock([], ledger)

    assert result.victims == []
    assert result.resolved
    assert ledger.slot_states[0] == SlotState.ACTIVE


def test_mutual_hold_needs_one_termination():
    ledger = ResourceLedger([1, 1], 2)
    ledger.activate(0)
    ledger.activate(1)
    ledger.request_resource(0, 0, 1)
    ledger.request_resource(1, 1, 1)
    ledger.request_resource(0, 1, 1)
    ledger.request_resource(1, 0, 1)

    deadlocked = detect_deadlock(ledger.snapshot())
    result = recover_from_deadlock(deadlocked, ledger)

    print(f"\n  Victims: {result.victims}")
    assert result.victims == [0], "Lowest index goes first and is enough"
    assert result.resolved
    assert list(result.released[0]) == [1, 0]
    assert list(ledger.available) == [1, 0]
    assert ledger.slot_states[0] == SlotState.TERMINATED
    assert ledger.slot_states[1] == SlotState.ACTIVE
    assert detect_deadlock(ledger.snapshot()) == []
    ledger.assert_resource_conservation("after recovery")


def test_cycle_of_three_with_extra_demand_needs_two_victims():
    """
    P0, P1, P2 each hold their own resource and want all of the
    next one around the cycle; P2 also waits on R1. Killing P0 frees R0, but
    P2 stays blocked on R1 until P1 is gone too.
    """
    ledger = ResourceLedger([1, 2, 2], 3)
    for slot in range(3):
        ledger.activate(slot)
    ledger.request_resource(0, 0, 1)
    ledger.request_resource(1, 1, 2)
    ledger.request_resource(2, 2, 2)
    ledger.request_resource(0, 1, 2)
    ledger.request_resource(1, 2, 2)
    ledger.request_resource(2, 0, 1)
    ledger.request_resource(2, 1, 1)

    deadlocked = detect_deadlock(ledger.snapshot())
    assert deadlocked == [0, 1, 2]

    result = recover_from_deadlock(deadlocked, ledger)

    assert result.victims == [0, 1]
    assert result.resolved
    assert ledger.slot_states[2] == SlotState.ACTIVE
    ledger.assert_resource_conservation("after recovery")


def test_recovery_uses_supplied_detector():
    ledger = ResourceLedger([1], 3)
    for slot in range(3):
        ledger.activate(slot)
    calls = []

    def always_stuck(snapshot):
        calls.append(snapshot)
        return [int(i) for i in np.flatnonzero(snapshot.active)]

    result = recover_from_deadlock([0, 1, 2], ledger, detector=always_stuck)

    assert result.victims == [0, 1, 2], "Stops only when the candidates run out"
    assert len(calls) == 3
    assert result.remaining == []
