"""
Virtual clock for the Resource Manager Simulator.

Simulated time only. Nothing in here reads the wall clock, so the dispatcher
cadence is reproducible given the same sequence of advances.
"""

from dataclasses import dataclass, field

NANOS_PER_SECOND = 1_000_000_000


@dataclass
class VirtualClock:
    """
    Monotonic simulated time split into whole seconds and a nanosecond remainder.

    Attributes:
        detect_interval_ns: Simulated time between deadlock detection runs
        report_interval_ns: Simulated time between resource table reports
        seconds: Whole simulated seconds elapsed
        nanoseconds: Sub-second remainder, always < NANOS_PER_SECOND
    """
    detect_interval_ns: int = NANOS_PER_SECOND
    report_interval_ns: int = NANOS_PER_SECOND // 2
    seconds: int = 0
    nanoseconds: int = 0

    # Index of the last boundary each predicate fired for
    _detect_mark: int = field(default=0, init=False, repr=False)
    _report_mark: int = field(default=0, init=False, repr=False)

    def __post_init__(self):
        if self.detect_interval_ns <= 0 or self.report_interval_ns <= 0:
            raise ValueError("Clock intervals must be positive")

    @property
    def now_ns(self) -> int:
        """Total elapsed simulated time in nanoseconds."""
        return self.seconds * NANOS_PER_SECOND + self.nanoseconds

    def advance(self, delta_ns: int) -> None:
        """
        Advance simulated time, carrying overflow into whole seconds.

        Args:
            delta_ns: Nanoseconds to add (must be >= 0)

        Raises:
            ValueError: If delta_ns is negative
        """
        if delta_ns < 0:
            raise ValueError(f"Clock cannot run backwards (delta={delta_ns})")
        self.nanoseconds += delta_ns
        if self.nanoseconds >= NANOS_PER_SECOND:
            carry, self.nanoseconds = divmod(self.nanoseconds, NANOS_PER_SECOND)
            self.seconds += carry

    def due_for_detection(self) -> bool:
        """
        True once if at least one detection boundary was crossed since the last
        time this returned True. Several skipped boundaries still fire only once.
        """
        boundary = self.now_ns // self.detect_interval_ns
        if boundary > self._detect_mark:
            self._detect_mark = boundary
            return True
        return False

    def due_for_report(self) -> bool:
        """Same contract as due_for_detection, keyed off the report interval."""
        boundary = self.now_ns // self.report_interval_ns
        if boundary > self._report_mark:
            self._report_mark = boundary
            return True
        return False

    def until_next_deadline(self) -> int:
        """Nanoseconds until the nearer of the next detection or report boundary."""
        now = self.now_ns
        to_detect = self.detect_interval_ns - now % self.detect_interval_ns
        to_report = self.report_interval_ns - now % self.report_interval_ns
        return min(to_detect, to_report)

    def reached(self, duration_s: int) -> bool:
        """Check whether the simulation has run for duration_s simulated seconds."""
        return self.seconds >= duration_s

    def __str__(self) -> str:
        return f"{self.seconds}:{self.nanoseconds:09d}"
