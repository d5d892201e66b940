"""
Event Model for the Resource Manager Simulator.

Defines event types for tracking what the dispatcher did and when.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.clock import NANOS_PER_SECOND


class EventType(Enum):
    """Types of events in the simulation."""
    SPAWN = "spawn"
    GRANT = "grant"
    QUEUED = "queued"
    RETRY_GRANT = "retry_grant"
    RELEASE = "release"
    REJECTED = "rejected"
    DEADLOCK = "deadlock"
    TERMINATION = "termination"
    EXIT = "exit"
    REPORT = "report"


@dataclass
class SimulationEvent:
    """
    Represents a single event in the simulation.
    
    Attributes:
        sim_time_ns: Simulated time when the event occurred
        event_type: Type of event
        slot: Slot involved in event (-1 for system-wide events)
        resource: Resource type involved (if applicable)
        amount: Resource amount involved (if applicable)
        message: Human-readable description
    """
    sim_time_ns: int
    event_type: EventType
    slot: int
    resource: Optional[int] = None
    amount: Optional[int] = None
    message: str = ""

    def __str__(self) -> str:
        """Format event for logging."""
        seconds, nanos = divmod(self.sim_time_ns, NANOS_PER_SECOND)
        base = f"[{seconds}:{nanos:09d}] P{self.slot}"

        if self.event_type == EventType.GRANT:
            return f"{base} requests R{self.resource}[{self.amount}] - GRANTED"
        elif self.event_type == EventType.QUEUED:
            return f"{base} requests R{self.resource}[{self.amount}] - QUEUED"
        elif self.event_type == EventType.RETRY_GRANT:
            return f"{base} pending R{self.resource}[{self.amount}] - GRANTED on retry"
        elif self.event_type == EventType.RELEASE:
            return f"{base} releases R{self.resource}[{self.amount}]"
        elif self.event_type == EventType.REJECTED:
            return f"{base} - REJECTED ({self.message})"
        elif self.event_type == EventType.DEADLOCK:
            return f"[{seconds}:{nanos:09d}] DEADLOCK DETECTED ({self.message})"
        elif self.event_type == EventType.TERMINATION:
            return f"{base} - TERMINATED ({self.message})"
        else:
            return f"{base} - {self.event_type.value}: {self.message}"


@dataclass
class EventLog:
    """Collection of simulation events."""
    events: list = None

    def __post_init__(self):
        if self.events is None:
            self.events = []

    def add(self, event: SimulationEvent) -> None:
        """Add an event to the log."""
        self.events.append(event)

    def get_events_by_type(self, event_type: EventType) -> list:
        """Get all events of a specific type."""
        return [e for e in self.events if e.event_type == event_type]

    def display(self) -> str:
        """Format all events for display."""
        return "\n".join(str(event) for event in self.events)
