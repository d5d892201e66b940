"""
Metrics Tracking for the Resource Manager Simulator.

Tracks counters and utilization samples throughout a run.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence
import statistics


@dataclass
class SimulationMetrics:
    """
    Accumulated metrics for a single simulation run.
    
    Tracks:
    1. Request outcomes: immediate grants, queued requests, grants made on retry
    2. Releases and rejected (malformed or invalid) events
    3. Deadlock detections and the terminations recovery needed
    4. Resource Utilization %: (allocated/total) × 100 sampled at every report
    """
    sim_time_ns: int = 0
    processes_spawned: int = 0
    normal_exits: int = 0
    grants: int = 0
    queued: int = 0
    retry_grants: int = 0
    releases: int = 0
    rejected: int = 0
    deadlock_count: int = 0
    terminations: int = 0

    # Per-report samples
    utilization_samples: List[float] = field(default_factory=list)
    resource_utilization_samples: Dict[int, List[float]] = field(default_factory=dict)

    def record_utilization(self, available: Sequence[int], total: Sequence[int]) -> None:
        """
        Record utilization for one report boundary.

        Args:
            available: Free instances per resource type
            total: Total instances per resource type
        """
        allocated = [int(t) - int(a) for a, t in zip(available, total)]
        grand_total = sum(int(t) for t in total)
        if grand_total > 0:
            self.utilization_samples.append(sum(allocated) / grand_total * 100)

        for resource_id, (used, tot) in enumerate(zip(allocated, total)):
            samples = self.resource_utilization_samples.setdefault(resource_id, [])
            if tot > 0:
                samples.append(used / int(tot) * 100)

    def get_avg_utilization(self) -> float:
        """Average overall resource utilization across report samples."""
        if not self.utilization_samples:
            return 0.0
        return statistics.mean(self.utilization_samples)

    def get_resource_utilization(self, resource_id: int) -> float:
        """
        Calculate average utilization for a specific resource.
        
        Args:
            resource_id: Resource type identifier
            
        Returns:
            Average utilization percentage for this resource
        """
        samples = self.resource_utilization_samples.get(resource_id)
        if not samples:
            return 0.0
        return statistics.mean(samples)

    def get_termination_rate(self) -> float:
        """Percentage of finished processes that were killed to break a deadlock."""
        ended = self.normal_exits + self.terminations
        if ended == 0:
            return 0.0
        return self.terminations / ended * 100


def format_metrics_report(metrics: SimulationMetrics, stop_reason: str = None) -> str:
    """
    Format metrics for display at end of simulation.
    
    Args:
        metrics: SimulationMetrics instance with collected data
        stop_reason: Reason simulation stopped
        
    Returns:
        Formatted metrics report string
    """
    seconds, nanos = divmod(metrics.sim_time_ns, 1_000_000_000)
    lines = []
    lines.append("\n" + "="*60)
    lines.append("SIMULATION METRICS")
    lines.append("="*60)

    if stop_reason:
        lines.append(f"Stop Reason: {stop_reason}")
    lines.append(f"Simulated Time: {seconds}:{nanos:09d}")
    lines.append(f"Processes Spawned: {metrics.processes_spawned}")
    lines.append(f"Normal Exits: {metrics.normal_exits}")
    lines.append("")

    lines.append("REQUESTS:")
    lines.append("-" * 60)
    lines.append(f"  Granted immediately: {metrics.grants}")
    lines.append(f"  Queued: {metrics.queued}")
    lines.append(f"  Granted on retry: {metrics.retry_grants}")
    lines.append(f"  Releases: {metrics.releases}")
    lines.append(f"  Rejected events: {metrics.rejected}")
    lines.append("")

    lines.append("DEADLOCK HANDLING:")
    lines.append("-" * 60)
    lines.append(f"  Deadlocks Detected: {metrics.deadlock_count}")
    lines.append(f"  Processes Terminated: {metrics.terminations}")
    lines.append(f"  Termination Rate: {metrics.get_termination_rate():.2f}% of ended processes")
    lines.append(f"  Average Resource Utilization: {metrics.get_avg_utilization():.2f}%")

    if metrics.resource_utilization_samples:
        lines.append("")
        lines.append("PER-RESOURCE UTILIZATION:")
        lines.append("-" * 60)
        for resource_id in sorted(metrics.resource_utilization_samples.keys()):
            util = metrics.get_resource_utilization(resource_id)
            lines.append(f"  R{resource_id}: {util:.2f}% average")

    lines.append("="*60)
    return "\n".join(lines)
