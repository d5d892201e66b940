"""
Deadlock Detection Algorithm for the Resource Manager Simulator.

Implements matrix-based deadlock detection (Work/Finish algorithm) for
multi-instance resource systems, driven by the actual pending demand of
each slot rather than a declared maximum.
"""

import numpy as np
from typing import List

from models.ledger import LedgerSnapshot


def detect_deadlock(snapshot: LedgerSnapshot) -> List[int]:
    """
    Detect deadlock using the Work/Finish algorithm.

    Algorithm (Multi-Instance Resources):
    1. Initialize Work = Available.copy()
    2. Finish[i] = False for active slots, True for every other slot
    3. Scan slots in ascending order for the first i with Finish[i] == False
       and Pending[i] <= Work (element-wise)
    4. If found: Work += Allocation[i], Finish[i] = True, restart the scan at slot 0
    5. When a full scan finds nothing, every slot with Finish[i] == False is deadlocked

    CRITICAL: Uses Pending[i] (what the slot is blocked on), NOT a maximum claim.
    A slot with no pending demand always finishes.

    Time Complexity: O(N²×R) where N = slots, R = resource types

    Args:
        snapshot: Ledger state to analyse (not modified)

    Returns:
        Deadlocked slot indices in ascending order (empty when there is no deadlock)

    References:
        Silberschatz, A., Galvin, P. B., & Gagne, G. (2018).
        Operating System Concepts (10th ed.). Chapter 7: Deadlocks.
    """
    work = snapshot.available.copy()
    finish = ~snapshot.active

    found_progress = True
    while found_progress:
        found_progress = False

        for i in range(snapshot.num_slots):
            if finish[i]:
                continue

            if np.all(snapshot.pending[i] <= work):
                work += snapshot.allocation[i]
                finish[i] = True
                found_progress = True
                # Restart from slot 0: the freed work may unblock a lower index
                break

    return [int(i) for i in np.flatnonzero(~finish)]
