"""
Inbound event model for the Resource Manager Simulator.

Workers talk to the manager only through these messages.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EventKind(Enum):
    """What a worker is asking the manager to do."""
    REQUEST = "request"
    RELEASE = "release"


@dataclass(frozen=True)
class ResourceEvent:
    """
    A single request or release sent by a worker.

    Attributes:
        slot: Process slot the sender occupies
        resource: Resource type index
        quantity: Number of instances (must be > 0)
        kind: REQUEST or RELEASE
        sender: Pid of the sending worker; events whose sender no longer
            occupies the slot are stale and get dropped
    """
    slot: int
    resource: int
    quantity: int
    kind: EventKind
    sender: Optional[int] = None

    def __str__(self) -> str:
        verb = "requests" if self.kind == EventKind.REQUEST else "releases"
        return f"P{self.slot} {verb} R{self.resource}[{self.quantity}]"
