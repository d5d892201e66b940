"""
Configuration for the Resource Manager Simulator.

Defaults mirror the classic oss setup: five resource types of ten instances
each, at most eighteen concurrent processes, detection every simulated second
and a resource table every half second.
"""

from dataclasses import dataclass, field
from typing import List, Optional

MAX_RESOURCES = 5
MAX_INSTANCES = 10
MAX_PROCESSES = 18

DEFAULT_TICK_NS = 10_000_000  # 10ms of simulated time per dispatch cycle
DEFAULT_DETECT_INTERVAL_NS = 1_000_000_000
DEFAULT_REPORT_INTERVAL_NS = 500_000_000
DEFAULT_POLL_TIMEOUT = 0.001  # real seconds to wait for the first event of a cycle
DEFAULT_LOG_FILE = "oss.log"


class ConfigError(Exception):
    """Exception raised when the simulation configuration is invalid."""
    pass


@dataclass
class SimulationConfig:
    """
    Settings for one simulation run.

    Attributes:
        num_processes: Concurrent process bound n (1..MAX_PROCESSES)
        duration_s: Simulated seconds to run (>= 1)
        resource_totals: Instance count per resource type
        tick_ns: Simulated time added per dispatch cycle
        detect_interval_ns: Simulated time between deadlock detections
        report_interval_ns: Simulated time between resource table reports
        poll_timeout: Real seconds to block waiting for the first event of a cycle
        log_file: Log file path, or None for console only
        verbose: Enable debug logging and per-cycle invariant checks
        seed: Seed for random workers (None for nondeterministic)
        max_worker_actions: Requests/releases a random worker sends before exiting
        worker_delay: (min, max) real seconds a random worker sleeps between actions
    """
    num_processes: int = 1
    duration_s: int = 1
    resource_totals: List[int] = field(default_factory=lambda: [MAX_INSTANCES] * MAX_RESOURCES)
    tick_ns: int = DEFAULT_TICK_NS
    detect_interval_ns: int = DEFAULT_DETECT_INTERVAL_NS
    report_interval_ns: int = DEFAULT_REPORT_INTERVAL_NS
    poll_timeout: float = DEFAULT_POLL_TIMEOUT
    log_file: Optional[str] = DEFAULT_LOG_FILE
    verbose: bool = False
    seed: Optional[int] = None
    max_worker_actions: int = 20
    worker_delay: tuple = (0.001, 0.003)

    def validate(self) -> "SimulationConfig":
        """
        Check every setting before the dispatcher starts.

        Returns:
            self, so the call can be chained

        Raises:
            ConfigError: On the first invalid setting
        """
        if not 1 <= self.num_processes <= MAX_PROCESSES:
            raise ConfigError(f"-n must be between 1 and {MAX_PROCESSES} (got {self.num_processes})")
        if self.duration_s < 1:
            raise ConfigError(f"-s must be at least 1 second (got {self.duration_s})")
        if not self.resource_totals:
            raise ConfigError("At least one resource type is required")
        for i, total in enumerate(self.resource_totals):
            if total <= 0:
                raise ConfigError(f"Resource R{i} total must be positive (got {total})")
        if self.tick_ns <= 0:
            raise ConfigError(f"Tick must be positive (got {self.tick_ns}ns)")
        if self.detect_interval_ns <= 0 or self.report_interval_ns <= 0:
            raise ConfigError("Detection and report intervals must be positive")
        if self.poll_timeout < 0:
            raise ConfigError(f"Poll timeout cannot be negative (got {self.poll_timeout})")
        if self.max_worker_actions < 1:
            raise ConfigError("Workers must perform at least one action")
        low, high = self.worker_delay
        if low < 0 or high < low:
            raise ConfigError(f"Invalid worker delay range {self.worker_delay}")
        return self
