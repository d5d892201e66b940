"""
Resource ledger for the Resource Manager Simulator.

Owns the Available vector, the Allocation and Pending matrices and the
occupancy of every process slot. It is the only code that mutates resource
state; everything else works on a LedgerSnapshot.
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from models.errors import (
    InvalidQuantity,
    InvalidRelease,
    NonIntegerField,
    ResourceIndexOutOfRange,
    SlotIndexOutOfRange,
    SlotNotActive,
)


class SlotState(Enum):
    """Lifecycle of a process slot: FREE -> ACTIVE -> TERMINATED -> FREE."""
    FREE = "FREE"
    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"


class RequestOutcome(Enum):
    """Result of a resource request."""
    GRANTED = "GRANTED"
    QUEUED = "QUEUED"


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Read-only copy of the ledger state, used by detection.

    Attributes:
        available: [R] Free instances by resource type
        allocation: [N][R] Instances held by each slot
        pending: [N][R] Unmet demand recorded for each slot
        active: [N] True for slots in the ACTIVE state
    """
    available: np.ndarray
    allocation: np.ndarray
    pending: np.ndarray
    active: np.ndarray

    @property
    def num_slots(self) -> int:
        return self.allocation.shape[0]

    @property
    def num_resources(self) -> int:
        return self.available.shape[0]


class ResourceLedger:
    """
    Allocation state for a fixed pool of slots and a fixed set of resource types.

    Every public mutator validates its arguments before touching any array, so
    a raised LedgerError always leaves the ledger exactly as it was.

    Invariants:
        available[r] + sum(allocation[:, r]) == total[r] for every r
        available, allocation and pending are never negative
        rows of slots that are not ACTIVE are all zero
    """

    def __init__(self, totals: Sequence[int], num_slots: int):
        """
        Initialize the ledger with every instance available.

        Args:
            totals: Total instance count per resource type
            num_slots: Size of the process slot pool

        Raises:
            ValueError: If there are no resource types, a total is not positive,
                or the pool is empty
        """
        if len(totals) == 0:
            raise ValueError("At least one resource type is required")
        if any(t <= 0 for t in totals):
            raise ValueError(f"Resource totals must be positive: {list(totals)}")
        if num_slots <= 0:
            raise ValueError(f"Slot pool must not be empty (got {num_slots})")

        self.total = np.array(totals, dtype=int)
        self.available = self.total.copy()
        self.allocation = np.zeros((num_slots, len(totals)), dtype=int)
        self.pending = np.zeros((num_slots, len(totals)), dtype=int)
        self.slot_states = [SlotState.FREE] * num_slots
        self._handles: Dict[int, Any] = {}

    @property
    def num_slots(self) -> int:
        """Number of process slots in the pool."""
        return self.allocation.shape[0]

    @property
    def num_resources(self) -> int:
        """Number of resource types."""
        return self.total.shape[0]

    # ------------------------------------------------------------------
    # Slot lifecycle
    # ------------------------------------------------------------------

    def activate(self, slot: int, handle: Any = None) -> None:
        """
        Move a FREE slot to ACTIVE with zeroed allocation and pending rows.

        Args:
            slot: Slot index
            handle: Opaque process handle identifying the occupant

        Raises:
            SlotIndexOutOfRange: If slot is outside the pool
            SlotNotActive: If the slot is not FREE
        """
        self._check_slot(slot)
        if self.slot_states[slot] != SlotState.FREE:
            raise SlotNotActive(
                f"P{slot}: cannot activate slot in state {self.slot_states[slot].value}"
            )
        self.allocation[slot] = 0
        self.pending[slot] = 0
        self.slot_states[slot] = SlotState.ACTIVE
        self._handles[slot] = handle

    def free_slot(self, slot: int) -> None:
        """
        Return a TERMINATED slot to the FREE pool.

        Raises:
            SlotNotActive: If the slot is not TERMINATED
        """
        self._check_slot(slot)
        if self.slot_states[slot] != SlotState.TERMINATED:
            raise SlotNotActive(
                f"P{slot}: only terminated slots can be freed (state {self.slot_states[slot].value})"
            )
        self.slot_states[slot] = SlotState.FREE
        self._handles.pop(slot, None)

    def find_free_slot(self) -> Optional[int]:
        """Lowest-index FREE slot, or None when the pool is full."""
        for slot, state in enumerate(self.slot_states):
            if state == SlotState.FREE:
                return slot
        return None

    def active_slots(self) -> List[int]:
        """Indices of ACTIVE slots in ascending order."""
        return [i for i, s in enumerate(self.slot_states) if s == SlotState.ACTIVE]

    def is_active(self, slot: int) -> bool:
        return (
            _is_index(slot)
            and 0 <= slot < self.num_slots
            and self.slot_states[slot] == SlotState.ACTIVE
        )

    def handle_of(self, slot: int) -> Any:
        """Process handle of the slot's occupant, or None."""
        return self._handles.get(slot)

    # ------------------------------------------------------------------
    # Resource operations
    # ------------------------------------------------------------------

    def request_resource(self, slot: int, resource: int, quantity: int) -> RequestOutcome:
        """
        Grant a request if enough instances are free, otherwise record it as pending.

        Args:
            slot: Requesting slot (must be ACTIVE)
            resource: Resource type index
            quantity: Instances requested (> 0)

        Returns:
            RequestOutcome.GRANTED or RequestOutcome.QUEUED

        Raises:
            LedgerError: If the event is malformed (nothing is changed)
        """
        self._check_event(slot, resource, quantity)

        if self.available[resource] >= quantity:
            self.available[resource] -= quantity
            self.allocation[slot][resource] += quantity
            return RequestOutcome.GRANTED

        self.pending[slot][resource] += quantity
        return RequestOutcome.QUEUED

    def release_resource(self, slot: int, resource: int, quantity: int) -> None:
        """
        Return instances held by a slot to the available pool.

        Raises:
            InvalidRelease: If quantity exceeds the slot's current allocation
            LedgerError: If the event is otherwise malformed
        """
        self._check_event(slot, resource, quantity)

        held = int(self.allocation[slot][resource])
        if quantity > held:
            raise InvalidRelease(slot, resource, quantity, held)

        self.allocation[slot][resource] -= quantity
        self.available[resource] += quantity

    def reclaim_all(self, slot: int) -> np.ndarray:
        """
        Take back everything a slot holds, clear its pending demand and mark it
        TERMINATED. Calling it again on a TERMINATED or FREE slot does nothing.

        Args:
            slot: Slot index

        Returns:
            Vector [R] of instances returned to available (zeros on a no-op)
        """
        self._check_slot(slot)
        if self.slot_states[slot] != SlotState.ACTIVE:
            return np.zeros(self.num_resources, dtype=int)

        released = self.allocation[slot].copy()
        self.available += released
        self.allocation[slot] = 0
        self.pending[slot] = 0
        self.slot_states[slot] = SlotState.TERMINATED
        return released

    def retry_pending(self) -> List[Tuple[int, int, int]]:
        """
        Try to satisfy recorded pending demand, slot by slot in ascending order.

        A pending entry is granted only in full; an entry that cannot be wholly
        satisfied stays pending untouched.

        Returns:
            List of (slot, resource, quantity) grants, in the order they were made
        """
        granted = []
        for slot in self.active_slots():
            for resource in range(self.num_resources):
                amount = int(self.pending[slot][resource])
                if amount == 0:
                    continue
                if self.available[resource] >= amount:
                    self.available[resource] -= amount
                    self.allocation[slot][resource] += amount
                    self.pending[slot][resource] = 0
                    granted.append((slot, resource, amount))
        return granted

    def has_pending(self, slot: int) -> bool:
        return bool(np.any(self.pending[slot] > 0))

    # ------------------------------------------------------------------
    # Views and checks
    # ------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        """Copy the current state for detection or reporting."""
        active = np.array(
            [s == SlotState.ACTIVE for s in self.slot_states], dtype=bool
        )
        return LedgerSnapshot(
            available=self.available.copy(),
            allocation=self.allocation.copy(),
            pending=self.pending.copy(),
            active=active,
        )

    def assert_resource_conservation(self, context: str = "") -> None:
        """Verify resource conservation: allocated + available = total for all resources.

        Args:
            context: Description of when this check is being run (for error messages)

        Raises:
            AssertionError: If conservation or non-negativity is violated
        """
        for r_idx in range(self.num_resources):
            allocated = int(self.allocation[:, r_idx].sum())
            available = int(self.available[r_idx])
            total = int(self.total[r_idx])

            assert allocated + available == total, (
                f"Resource conservation violated for R{r_idx} {context}\n"
                f"  Allocated: {allocated}, Available: {available}, Total: {total}"
            )
            assert available >= 0, (
                f"Negative available resources for R{r_idx} {context}\n"
                f"  Available: {available}"
            )

        assert not np.any(self.allocation < 0), f"Negative allocation {context}"
        assert not np.any(self.pending < 0), f"Negative pending request {context}"

    def _check_slot(self, slot: int) -> None:
        if not _is_index(slot):
            raise NonIntegerField("slot", slot)
        if slot < 0 or slot >= self.num_slots:
            raise SlotIndexOutOfRange(slot, self.num_slots)

    def _check_event(self, slot: int, resource: int, quantity: int) -> None:
        """Validate an inbound request/release before any mutation."""
        self._check_slot(slot)
        if not _is_index(resource):
            raise NonIntegerField("resource", resource)
        if not _is_index(quantity):
            raise NonIntegerField("quantity", quantity)
        if resource < 0 or resource >= self.num_resources:
            raise ResourceIndexOutOfRange(resource, self.num_resources)
        if quantity <= 0:
            raise InvalidQuantity(quantity)
        if self.slot_states[slot] != SlotState.ACTIVE:
            raise SlotNotActive(
                f"P{slot}: slot is {self.slot_states[slot].value}, event dropped"
            )


def _is_index(value) -> bool:
    """True for Python or numpy integers, but not bools."""
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)
