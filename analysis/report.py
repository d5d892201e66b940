"""
Resource table reporting for the Resource Manager Simulator.

The dispatcher hands a ResourceReport to its report sink on every report
boundary. LogReportSink writes it to the simulator log.
"""

from dataclasses import dataclass
from typing import Dict, List

from models.clock import VirtualClock
from models.ledger import ResourceLedger
from utils.logger import SimulatorLogger


@dataclass(frozen=True)
class ResourceReport:
    """
    Point-in-time view of resource holdings.

    Attributes:
        sim_time_ns: Simulated time of the snapshot
        available: Free instances per resource type
        allocation: Holdings of every active slot, keyed by slot index
    """
    sim_time_ns: int
    available: List[int]
    allocation: Dict[int, List[int]]

    @classmethod
    def from_ledger(cls, clock: VirtualClock, ledger: ResourceLedger) -> "ResourceReport":
        return cls(
            sim_time_ns=clock.now_ns,
            available=[int(x) for x in ledger.available],
            allocation={
                slot: [int(x) for x in ledger.allocation[slot]]
                for slot in ledger.active_slots()
            },
        )


def format_resource_table(report: ResourceReport) -> str:
    """
    Render a report as the resource table written to the log.

    Returns:
        Multi-line table: available vector, then one allocation row per active slot
    """
    seconds, nanos = divmod(report.sim_time_ns, 1_000_000_000)
    lines = [f"Current Resource Table at time {seconds}:{nanos:09d}"]
    lines.append("Available Resources:")
    lines.append(" ".join(f"R{i}: {n}" for i, n in enumerate(report.available)))
    lines.append("Allocation Table:")
    lines.append("      " + " ".join(f"R{i:<2}" for i in range(len(report.available))))
    for slot in sorted(report.allocation):
        row = " ".join(f"{n:3}" for n in report.allocation[slot])
        lines.append(f"  P{slot:<2}: {row}")
    if not report.allocation:
        lines.append("  (no active processes)")
    return "\n".join(lines)


class LogReportSink:
    """Report sink that writes each resource table through the simulator logger."""

    def __init__(self, logger: SimulatorLogger):
        self.logger = logger

    def report(self, report: ResourceReport) -> None:
        self.logger.log_report(format_resource_table(report))

    def flush(self) -> None:
        self.logger.flush()
