"""
Logger utility for the Resource Manager Simulator.

Provides timestamped logging with verbosity levels, to the console and
optionally to a log file.
"""

from typing import List, Optional
from datetime import datetime

from models.clock import NANOS_PER_SECOND


class SimulatorLogger:
    """
    Logger for dispatcher events and decisions.
    
    Format: "[sec:nanosec] PY requests RZ[n] - GRANTED/QUEUED"
    """

    def __init__(self, verbose: bool = False, log_file: Optional[str] = None, echo: bool = True):
        """
        Initialize logger.
        
        Args:
            verbose: Enable verbose output
            log_file: Optional file path for logging
            echo: Also print to the console
            
        Raises:
            OSError: If the log file cannot be opened
        """
        self.verbose = verbose
        self.log_file = log_file
        self.echo = echo
        self.file_handle = None

        if self.log_file:
            self.file_handle = open(self.log_file, 'w', encoding='utf-8')
            self._write_header()

    def _write_header(self) -> None:
        """Write log file header."""
        if self.file_handle:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            self.file_handle.write(f"Resource Manager Log - {timestamp}\n")
            self.file_handle.write("="*60 + "\n\n")

    def log(self, message: str, level: str = "info") -> None:
        """
        Log a message.
        
        Args:
            message: Message to log
            level: Log level (info, debug, warning, error)
        """
        if level == "debug" and not self.verbose:
            return

        formatted = self._format_message(message, level)

        if self.echo:
            print(formatted)

        if self.file_handle:
            self.file_handle.write(formatted + "\n")
            self.file_handle.flush()

    def _format_message(self, message: str, level: str) -> str:
        """Format message with level prefix."""
        if level == "error":
            return f"[ERROR] {message}"
        elif level == "warning":
            return f"[WARNING] {message}"
        elif level == "debug":
            return f"[DEBUG] {message}"
        else:
            return message

    def log_at(self, sim_time_ns: int, message: str, level: str = "info") -> None:
        """Log a message stamped with simulated time."""
        seconds, nanos = divmod(sim_time_ns, NANOS_PER_SECOND)
        self.log(f"[{seconds}:{nanos:09d}] {message}", level)

    def log_request(
        self,
        sim_time_ns: int,
        slot: int,
        resource: int,
        amount: int,
        granted: bool
    ) -> None:
        """
        Log a resource request decision.
        
        Args:
            sim_time_ns: Current simulated time
            slot: Requesting slot
            resource: Resource type index
            amount: Amount requested
            granted: Whether the request was granted or queued
        """
        status = "GRANTED" if granted else "QUEUED"
        self.log_at(sim_time_ns, f"P{slot} requests R{resource}[{amount}] - {status}")

    def log_release(self, sim_time_ns: int, slot: int, resource: int, amount: int) -> None:
        self.log_at(sim_time_ns, f"P{slot} releases R{resource}[{amount}]")

    def log_deadlock(self, sim_time_ns: int, deadlocked_slots: List[int]) -> None:
        """
        Log deadlock detection.
        
        Args:
            sim_time_ns: Current simulated time
            deadlocked_slots: Slots in deadlock
        """
        slots_str = ", ".join(f"P{slot}" for slot in deadlocked_slots)
        self.log_at(sim_time_ns, f"DEADLOCK DETECTED - Processes in deadlock: [{slots_str}]", "warning")

    def log_recovery(self, sim_time_ns: int, victim: int, resources_held: str) -> None:
        """
        Log recovery action.
        
        Args:
            sim_time_ns: Current simulated time
            victim: Slot of the terminated process
            resources_held: String describing resources reclaimed
        """
        self.log_at(sim_time_ns, f"RECOVERY - Terminated P{victim} (holding {resources_held})")

    def log_report(self, table: str) -> None:
        """Write a resource table. Tables go to the file only unless verbose."""
        if self.verbose and self.echo:
            print(table)
        if self.file_handle:
            self.file_handle.write(table + "\n\n")

    def flush(self) -> None:
        if self.file_handle:
            self.file_handle.flush()

    def close(self) -> None:
        """Close log file if open."""
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

    def __del__(self):
        """Cleanup on destruction."""
        self.close()
