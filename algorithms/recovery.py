"""
Deadlock Recovery Algorithm for the Resource Manager Simulator.

Breaks a deadlock by terminating victims one at a time, re-running
detection after each termination.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from models.ledger import LedgerSnapshot, ResourceLedger
from algorithms.detection import detect_deadlock


@dataclass
class RecoveryResult:
    """
    Outcome of a recovery pass.

    Attributes:
        victims: Slots terminated, in the order they were chosen
        released: Instances reclaimed from each victim [R]
        remaining: Slots still deadlocked when recovery stopped
    """
    victims: List[int] = field(default_factory=list)
    released: Dict[int, np.ndarray] = field(default_factory=dict)
    remaining: List[int] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return not self.remaining


def select_victim(deadlocked_slots: List[int]) -> int:
    """
    Select the next victim: the lowest slot index in the deadlocked set.

    Args:
        deadlocked_slots: Slots currently deadlocked

    Returns:
        Slot index of the victim, or -1 when the set is empty
    """
    if not deadlocked_slots:
        return -1
    return min(deadlocked_slots)


def recover_from_deadlock(
    deadlocked_slots: List[int],
    ledger: ResourceLedger,
    detector: Callable[[LedgerSnapshot], List[int]] = detect_deadlock
) -> RecoveryResult:
    """
    Terminate victims one by one until the deadlock is broken.

    Reclaiming a single victim can free enough work for the rest of the set
    to finish, so detection is re-run after every termination instead of
    reclaiming the whole set at once.

    Args:
        deadlocked_slots: Output of the detector (may be empty: no action)
        ledger: Ledger to reclaim from
        detector: Detection function to re-run after each termination

    Returns:
        RecoveryResult describing victims and anything left deadlocked
    """
    result = RecoveryResult()
    candidates = set(deadlocked_slots)
    detected = sorted(candidates)
    remaining = detected

    while remaining:
        victim = select_victim(remaining)
        result.victims.append(victim)
        result.released[victim] = ledger.reclaim_all(victim)
        candidates.discard(victim)

        # Re-run deadlock detection to see if deadlock is broken
        detected = detector(ledger.snapshot())
        remaining = [s for s in detected if s in candidates]

    result.remaining = detected
    return result
