"""
Resource Ledger Tests

Tests request/release/reclaim/retry on ResourceLedger and the invariants
that must hold after every operation.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.errors import (
    InvalidQuantity,
    InvalidRelease,
    NonIntegerField,
    ResourceIndexOutOfRange,
    SlotIndexOutOfRange,
    SlotNotActive,
)
from models.ledger import RequestOutcome, ResourceLedger, SlotState


def _ledger(totals, num_slots, active=None):
    ledger = ResourceLedger(totals, num_slots)
    for slot in (active if active is not None else range(num_slots)):
        ledger.activate(slot, handle=f"h{slot}")
    return ledger


def test_new_ledger_has_everything_available():
    ledger = ResourceLedger([10, 5, 7], 3)

    assert list(ledger.available) == [10, 5, 7]
    assert ledger.allocation.shape == (3, 3), "Should be 3x3"
    assert not ledger.allocation.any()
    assert not ledger.pending.any()
    assert ledger.slot_states == [SlotState.FREE] * 3
    ledger.assert_resource_conservation("at start")


def test_invalid_construction_rejected():
    with pytest.raises(ValueError):
        ResourceLedger([], 2)
    with pytest.raises(ValueError):
        ResourceLedger([3, 0], 2)
    with pytest.raises(ValueError):
        ResourceLedger([3], 0)


def test_request_granted_when_available():
    ledger = _ledger([10, 5], 2)

    outcome = ledger.request_resource(0, 0, 3)

    assert outcome == RequestOutcome.GRANTED
    assert ledger.available[0] == 7, "R0 should have 7 available"
    assert ledger.allocation[0][0] == 3, "P0 should hold R0[3]"
    assert ledger.pending[0][0] == 0
    ledger.assert_resource_conservation("after grant")


def test_request_queued_when_insufficient():
    ledger = _ledger([4], 2)
    ledger.request_resource(0, 0, 3)

    outcome = ledger.request_resource(1, 0, 2)

    assert outcome == RequestOutcome.QUEUED
    assert ledger.available[0] == 1, "Queued request must not touch available"
    assert ledger.allocation[1][0] == 0
    assert ledger.pending[1][0] == 2


def test_pending_accumulates_across_resources():
    ledger = _ledger([1, 1], 2)
    ledger.request_resource(0, 0, 1)
    ledger.request_resource(0, 1, 1)

    assert ledger.request_resource(1, 0, 1) == RequestOutcome.QUEUED
    assert ledger.request_resource(1, 1, 1) == RequestOutcome.QUEUED
    assert ledger.request_resource(1, 0, 1) == RequestOutcome.QUEUED

    assert list(ledger.pending[1]) == [2, 1]
    assert ledger.has_pending(1)
    assert not ledger.has_pending(0)


def test_request_never_overgrants():
    ledger = _ledger([3], 3)
    for slot in range(3):
        for _ in range(4):
            ledger.request_resource(slot, 0, 1)
            assert ledger.available[0] >= 0
            ledger.assert_resource_conservation(f"after P{slot} request")

    assert ledger.available[0] == 0
    assert ledger.allocation[:, 0].sum() == 3


def test_release_returns_instances():
    ledger = _ledger([10], 1)
    ledger.request_resource(0, 0, 4)

    ledger.release_resource(0, 0, 3)

    assert ledger.allocation[0][0] == 1
    assert ledger.available[0] == 9
    ledger.assert_resource_conservation("after release")


def test_invalid_release_leaves_state_unchanged():
    ledger = _ledger([5], 1)
    ledger.request_resource(0, 0, 2)
    available_before = ledger.available.copy()

    with pytest.raises(InvalidRelease) as excinfo:
        ledger.release_resource(0, 0, 3)

    assert excinfo.value.held == 2
    assert ledger.allocation[0][0] == 2, "Allocation must remain R0[2]"
    assert np.array_equal(ledger.available, available_before), "Available must be unchanged"


def test_malformed_events_rejected_without_change():
    ledger = _ledger([5, 5], 2, active=[0])
    ledger.request_resource(0, 0, 1)
    before = ledger.snapshot()

    with pytest.raises(ResourceIndexOutOfRange):
        ledger.request_resource(0, 2, 1)
    with pytest.raises(ResourceIndexOutOfRange):
        ledger.release_resource(0, -1, 1)
    with pytest.raises(SlotIndexOutOfRange):
        ledger.request_resource(7, 0, 1)
    with pytest.raises(InvalidQuantity):
        ledger.request_resource(0, 0, 0)
    with pytest.raises(InvalidQuantity):
        ledger.release_resource(0, 0, -2)
    with pytest.raises(SlotNotActive):
        ledger.request_resource(1, 0, 1)

    after = ledger.snapshot()
    assert np.array_equal(before.available, after.available)
    assert np.array_equal(before.allocation, after.allocation)
    assert np.array_equal(before.pending, after.pending)


def test_non_integer_fields_rejected_without_change():
    ledger = _ledger([10], 2)
    before = ledger.snapshot()

    with pytest.raises(NonIntegerField):
        ledger.request_resource(0, 0, 1.5)
    with pytest.raises(NonIntegerField):
        ledger.request_resource(0, 0.0, 1)
    with pytest.raises(NonIntegerField):
        ledger.release_resource(1.0, 0, 1)
    with pytest.raises(NonIntegerField):
        ledger.request_resource(0, 0, True)

    assert not ledger.is_active(0.5)
    after = ledger.snapshot()
    assert np.array_equal(before.available, after.available)
    assert np.array_equal(before.allocation, after.allocation)
    assert np.array_equal(before.pending, after.pending)
    ledger.assert_resource_conservation("after non-integer events")


def test_numpy_integers_accepted():
    ledger = _ledger([4], 1)

    assert ledger.request_resource(np.int64(0), np.int64(0), np.int64(3)) == RequestOutcome.GRANTED
    assert ledger.available[0] == 1


def test_reclaim_all_returns_allocation_and_clears_pending():
    ledger = _ledger([5, 3], 2)
    ledger.request_resource(0, 0, 2)
    ledger.request_resource(0, 1, 3)
    ledger.request_resource(0, 0, 9)  # queued
    prior_allocation = ledger.allocation[0].copy()
    prior_available = ledger.available.copy()

    released = ledger.reclaim_all(0)

    assert np.array_equal(released, prior_allocation)
    assert np.array_equal(ledger.available, prior_available + prior_allocation)
    assert not ledger.allocation[0].any()
    assert not ledger.pending[0].any()
    assert ledger.slot_states[0] == SlotState.TERMINATED
    ledger.assert_resource_conservation("after reclaim")


def test_reclaim_all_is_idempotent():
    ledger = _ledger([5], 1)
    ledger.request_resource(0, 0, 2)
    ledger.reclaim_all(0)
    available = ledger.available.copy()

    released = ledger.reclaim_all(0)

    assert not released.any()
    assert np.array_equal(ledger.available, available)
    assert ledger.slot_states[0] == SlotState.TERMINATED


def test_slot_lifecycle():
    ledger = ResourceLedger([2], 2)
    assert ledger.find_free_slot() == 0

    ledger.activate(0, handle="first")
    assert ledger.is_active(0)
    assert ledger.handle_of(0) == "first"
    assert ledger.find_free_slot() == 1
    assert ledger.active_slots() == [0]

    with pytest.raises(SlotNotActive):
        ledger.activate(0, handle="again")
    with pytest.raises(SlotNotActive):
        ledger.free_slot(0)

    ledger.request_resource(0, 0, 2)
    ledger.reclaim_all(0)
    ledger.free_slot(0)
    assert ledger.slot_states[0] == SlotState.FREE
    assert ledger.handle_of(0) is None

    ledger.activate(0, handle="second")
    assert not ledger.allocation[0].any(), "Reactivated slot starts with nothing"
    assert ledger.handle_of(0) == "second"


def test_retry_pending_grants_in_slot_order():
    ledger = _ledger([3], 4)
    ledger.request_resource(0, 0, 3)
    ledger.request_resource(3, 0, 1)
    ledger.request_resource(1, 0, 2)
    ledger.request_resource(2, 0, 1)

    ledger.release_resource(0, 0, 3)
    granted = ledger.retry_pending()

    # P1 takes 2, P2 takes the last one, P3 must keep waiting
    assert granted == [(1, 0, 2), (2, 0, 1)]
    assert ledger.pending[3][0] == 1
    assert ledger.available[0] == 0
    ledger.assert_resource_conservation("after retry")


def test_retry_pending_never_grants_partially():
    ledger = _ledger([3], 2)
    ledger.request_resource(0, 0, 2)
    ledger.request_resource(1, 0, 3)

    assert ledger.retry_pending() == []
    assert ledger.pending[1][0] == 3
    assert ledger.allocation[1][0] == 0
    assert ledger.available[0] == 1


def test_retry_pending_skips_inactive_slots():
    ledger = _ledger([1], 2)
    ledger.request_resource(0, 0, 1)
    ledger.request_resource(1, 0, 1)
    ledger.reclaim_all(1)
    ledger.release_resource(0, 0, 1)

    assert ledger.retry_pending() == []
    assert ledger.available[0] == 1


def test_queued_request_resolves_via_retry():
    """R=1, total=[2]: P0 holds 2, P1 waits for 1 until P0 releases one."""
    ledger = _ledger([2], 2)
    ledger.request_resource(0, 0, 2)
    assert ledger.request_resource(1, 0, 1) == RequestOutcome.QUEUED

    ledger.release_resource(0, 0, 1)
    granted = ledger.retry_pending()

    assert granted == [(1, 0, 1)]
    assert ledger.pending[1][0] == 0
    assert ledger.allocation[1][0] == 1
    assert ledger.available[0] == 0


def test_snapshot_is_a_copy():
    ledger = _ledger([4], 2, active=[1])
    ledger.request_resource(1, 0, 1)

    snapshot = ledger.snapshot()
    ledger.request_resource(1, 0, 1)

    assert snapshot.available[0] == 3
    assert snapshot.allocation[1][0] == 1
    assert list(snapshot.active) == [False, True]
    assert snapshot.num_slots == 2 and snapshot.num_resources == 1


def test_conservation_check_catches_violation():
    ledger = _ledger([4], 1)
    ledger.available[0] = 5

    with pytest.raises(AssertionError):
        ledger.assert_resource_conservation("tampered")
