#!/usr/bin/env python3
"""
Resource Manager Simulator
Main entry point for the simulation system.

A single-threaded manager arbitrates a fixed set of multi-instance resources
among concurrently running worker processes, detects deadlock on a simulated
clock and recovers by terminating victims.
"""

import argparse
import dataclasses
import queue
import signal
import sys
import threading
from typing import Callable, List, Optional

from models.clock import VirtualClock
from models.errors import InvalidRelease, LedgerError, SetupFailure
from models.event import EventKind, ResourceEvent
from models.ledger import LedgerSnapshot, RequestOutcome, ResourceLedger, SlotState
from algorithms.detection import detect_deadlock
from algorithms.recovery import recover_from_deadlock
from analysis.events import EventLog, EventType, SimulationEvent
from analysis.metrics import SimulationMetrics, format_metrics_report
from analysis.report import LogReportSink, ResourceReport
from utils.config import MAX_INSTANCES, MAX_RESOURCES, ConfigError, SimulationConfig
from utils.logger import SimulatorLogger
from utils.scenario_loader import ScenarioLoadError, load_scenario
from utils.workers import ScriptedChannel, ScriptedWorkerPool, ThreadWorkerPool


class Dispatcher:
    """
    The resource manager.

    Owns the ledger, the clock, the event log and the metrics. Each dispatch
    cycle:
    1. Advance the clock by one tick
    2. Reclaim slots whose workers exited, then retry pending requests
    3. Launch workers into free slots
    4. Drain the channel, applying one ledger operation per event
    5. Run detection and recovery if a detection boundary was crossed
    6. Hand a resource table to the report sink if a report boundary was crossed

    Worker threads never touch the ledger; the channel is the only shared object.
    """

    def __init__(
        self,
        config: SimulationConfig,
        workers,
        channel=None,
        clock: Optional[VirtualClock] = None,
        logger: Optional[SimulatorLogger] = None,
        report_sink=None,
        detector: Callable[[LedgerSnapshot], List[int]] = detect_deadlock
    ):
        """
        Set up shared state and the channel.

        Args:
            config: Validated simulation configuration
            workers: Worker pool (spawn / poll_exit / terminate / shutdown)
            channel: Inbound event channel (a new queue.Queue if omitted)
            clock: Virtual clock (built from config if omitted)
            logger: Logger (built from config if omitted)
            report_sink: Receives ResourceReports (logs them if omitted)
            detector: Deadlock detection function

        Raises:
            SetupFailure: If the ledger, channel or log cannot be created
        """
        self.config = config
        self.workers = workers
        self.detector = detector
        try:
            self.ledger = ResourceLedger(config.resource_totals, config.num_processes)
            self.clock = clock or VirtualClock(
                detect_interval_ns=config.detect_interval_ns,
                report_interval_ns=config.report_interval_ns,
            )
            self.channel = channel if channel is not None else queue.Queue()
            self.logger = logger or SimulatorLogger(verbose=config.verbose, log_file=config.log_file)
        except (OSError, ValueError) as e:
            raise SetupFailure(f"Failed to set up resource manager: {e}") from e

        self.report_sink = report_sink or LogReportSink(self.logger)
        self.event_log = EventLog()
        self.metrics = SimulationMetrics()
        self.stop_reason: Optional[str] = None
        self._stop = threading.Event()
        self._torn_down = False
        self._teardown_lock = threading.Lock()

    def request_shutdown(self) -> None:
        """Ask the loop to stop after the current cycle. Safe from signal handlers."""
        self._stop.set()

    def run(self) -> SimulationMetrics:
        """
        Run until the configured duration elapses or shutdown is requested.

        Teardown runs exactly once on every exit path.
        """
        self.logger.log(f"\n{'='*60}")
        self.logger.log("SIMULATION START")
        self.logger.log(
            f"Processes: {self.config.num_processes}, "
            f"duration: {self.config.duration_s}s, "
            f"resources: {list(self.config.resource_totals)}"
        )
        self.logger.log(f"{'='*60}\n")

        try:
            while True:
                if self._stop.is_set():
                    self.stop_reason = "shutdown requested"
                    break
                if self.clock.reached(self.config.duration_s):
                    self.stop_reason = "simulated duration reached"
                    break
                self.run_cycle()
        finally:
            if self.stop_reason is None:
                self.stop_reason = "aborted"
            self.teardown()
        return self.metrics

    def run_cycle(self) -> None:
        """One dispatch cycle."""
        self.clock.advance(self.config.tick_ns)
        self._reap_exited()
        self._spawn_workers()
        self.drain()

        if self.clock.due_for_detection():
            self.detect_and_recover()

        if self.clock.due_for_report():
            self.report()

        if self.config.verbose:
            self.ledger.assert_resource_conservation(f"at {self.clock}")

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def drain(self) -> int:
        """
        Apply every event currently on the channel.

        Blocks for the first event no longer than the poll timeout or the next
        cadence boundary, then drains without blocking.

        Returns:
            Number of events applied
        """
        timeout = min(self.config.poll_timeout, self.clock.until_next_deadline() / 1e9)
        applied = 0
        try:
            event = self.channel.get(timeout=timeout)
            while True:
                self.apply_event(event)
                applied += 1
                event = self.channel.get_nowait()
        except queue.Empty:
            pass
        return applied

    def apply_event(self, event: ResourceEvent) -> None:
        """
        Apply one inbound event to the ledger.

        Per-event errors are logged and recorded; they never propagate.
        """
        now = self.clock.now_ns

        if event.sender is not None and self.ledger.is_active(event.slot):
            owner = self.ledger.handle_of(event.slot)
            if owner is not None and owner.pid != event.sender:
                self._reject(event, f"stale event from pid {event.sender}, slot no longer owned")
                return

        try:
            if event.kind == EventKind.REQUEST:
                outcome = self.ledger.request_resource(event.slot, event.resource, event.quantity)
                granted = outcome == RequestOutcome.GRANTED
                self.logger.log_request(now, event.slot, event.resource, event.quantity, granted)
                if granted:
                    self.metrics.grants += 1
                else:
                    self.metrics.queued += 1
                self.event_log.add(SimulationEvent(
                    sim_time_ns=now,
                    event_type=EventType.GRANT if granted else EventType.QUEUED,
                    slot=event.slot,
                    resource=event.resource,
                    amount=event.quantity
                ))
            else:
                self.ledger.release_resource(event.slot, event.resource, event.quantity)
                self.logger.log_release(now, event.slot, event.resource, event.quantity)
                self.metrics.releases += 1
                self.event_log.add(SimulationEvent(
                    sim_time_ns=now,
                    event_type=EventType.RELEASE,
                    slot=event.slot,
                    resource=event.resource,
                    amount=event.quantity
                ))
                self.retry_pending()
        except InvalidRelease as e:
            self._reject(event, str(e))
        except LedgerError as e:
            self._reject(event, f"malformed event dropped: {e}")

    def retry_pending(self) -> None:
        """Grant whatever pending demand the available pool now covers."""
        now = self.clock.now_ns
        for slot, resource, amount in self.ledger.retry_pending():
            self.logger.log_at(now, f"P{slot} pending R{resource}[{amount}] - GRANTED on retry")
            self.metrics.retry_grants += 1
            self.event_log.add(SimulationEvent(
                sim_time_ns=now,
                event_type=EventType.RETRY_GRANT,
                slot=slot,
                resource=resource,
                amount=amount
            ))

    def _reject(self, event: ResourceEvent, reason: str) -> None:
        self.logger.log_at(self.clock.now_ns, f"{event} - REJECTED ({reason})", "warning")
        self.metrics.rejected += 1
        self.event_log.add(SimulationEvent(
            sim_time_ns=self.clock.now_ns,
            event_type=EventType.REJECTED,
            slot=event.slot,
            resource=event.resource,
            amount=event.quantity,
            message=reason
        ))

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def _spawn_workers(self) -> None:
        """Offer every free slot to the worker pool."""
        now = self.clock.now_ns
        for slot, state in enumerate(self.ledger.slot_states):
            if state != SlotState.FREE:
                continue
            handle = self.workers.spawn(slot, self.channel)
            if handle is None:
                continue
            self.ledger.activate(slot, handle)
            self.metrics.processes_spawned += 1
            self.logger.log_at(now, f"P{slot} launched (pid {handle.pid})", "debug")
            self.event_log.add(SimulationEvent(
                sim_time_ns=now,
                event_type=EventType.SPAWN,
                slot=slot,
                message=f"pid {handle.pid}"
            ))

    def _reap_exited(self) -> None:
        """Reclaim the slots of workers that finished on their own."""
        now = self.clock.now_ns
        reclaimed = False
        for slot in self.ledger.active_slots():
            handle = self.ledger.handle_of(slot)
            if not self.workers.poll_exit(handle):
                continue
            released = self.ledger.reclaim_all(slot)
            self.ledger.free_slot(slot)
            reclaimed = reclaimed or bool(released.any())
            self.metrics.normal_exits += 1
            self.logger.log_at(now, f"P{slot} exited, released {_format_vector(released)}")
            self.event_log.add(SimulationEvent(
                sim_time_ns=now,
                event_type=EventType.EXIT,
                slot=slot,
                message=f"released {_format_vector(released)}"
            ))
        if reclaimed:
            self.retry_pending()

    # ------------------------------------------------------------------
    # Detection, recovery, reporting
    # ------------------------------------------------------------------

    def detect_and_recover(self) -> List[int]:
        """
        Run detection and, when a deadlock exists, terminate victims until it clears.

        Returns:
            The slots the detector reported as deadlocked
        """
        now = self.clock.now_ns
        deadlocked = self.detector(self.ledger.snapshot())
        if not deadlocked:
            self.logger.log_at(now, "Deadlock check: No deadlock detected", "debug")
            return deadlocked

        self.metrics.deadlock_count += 1
        self.logger.log_deadlock(now, deadlocked)
        for slot in deadlocked:
            self.logger.log(
                f"  P{slot}: allocation={_format_vector(self.ledger.allocation[slot])}, "
                f"pending={_format_vector(self.ledger.pending[slot])}"
            )
        self.event_log.add(SimulationEvent(
            sim_time_ns=now,
            event_type=EventType.DEADLOCK,
            slot=-1,
            message=f"slots {deadlocked}"
        ))

        result = recover_from_deadlock(deadlocked, self.ledger, self.detector)
        for victim in result.victims:
            handle = self.ledger.handle_of(victim)
            if handle is not None:
                self.workers.terminate(handle)
            self.ledger.free_slot(victim)
            held = _format_vector(result.released[victim])
            self.metrics.terminations += 1
            self.logger.log_recovery(now, victim, held)
            self.event_log.add(SimulationEvent(
                sim_time_ns=now,
                event_type=EventType.TERMINATION,
                slot=victim,
                message=f"deadlock victim, released {held}"
            ))

        if result.resolved:
            self.logger.log_at(now, f"Deadlock resolved after {len(result.victims)} termination(s)")
        else:
            self.logger.log_at(now, f"Slots still deadlocked after recovery: {result.remaining}", "error")

        self.retry_pending()
        return deadlocked

    def report(self) -> None:
        """Send the current resource table to the report sink."""
        snapshot = ResourceReport.from_ledger(self.clock, self.ledger)
        self.report_sink.report(snapshot)
        self.metrics.record_utilization(snapshot.available, self.ledger.total)
        self.event_log.add(SimulationEvent(
            sim_time_ns=snapshot.sim_time_ns,
            event_type=EventType.REPORT,
            slot=-1
        ))

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def teardown(self) -> bool:
        """
        Stop workers, return every resource, empty the channel and flush the
        report sink. Runs once; later calls do nothing.

        Returns:
            True if this call performed the teardown
        """
        with self._teardown_lock:
            if self._torn_down:
                return False
            self._torn_down = True

        for slot in self.ledger.active_slots():
            handle = self.ledger.handle_of(slot)
            if handle is not None:
                self.workers.terminate(handle)
            self.ledger.reclaim_all(slot)
            self.ledger.free_slot(slot)
        self.workers.shutdown()

        discarded = 0
        try:
            while True:
                self.channel.get_nowait()
                discarded += 1
        except queue.Empty:
            pass
        if discarded:
            self.logger.log(f"Discarded {discarded} undelivered event(s) at shutdown", "debug")

        self.ledger.assert_resource_conservation("after teardown")

        self.metrics.sim_time_ns = self.clock.now_ns
        self.logger.log(f"\n{'='*60}")
        self.logger.log(f"SIMULATION COMPLETE ({self.stop_reason})")
        self.logger.log(f"{'='*60}")
        self.logger.log(format_metrics_report(self.metrics, self.stop_reason))

        self.report_sink.flush()
        self.logger.close()
        return True


def _format_vector(values) -> str:
    """Format a resource vector as R0[n], R1[m], ... skipping zeros."""
    parts = [f"R{i}[{int(v)}]" for i, v in enumerate(values) if v > 0]
    return ", ".join(parts) if parts else "none"


def run_simulation(
    config: SimulationConfig,
    scenario_path: Optional[str] = None,
    logger: Optional[SimulatorLogger] = None,
    report_sink=None,
    install_signal_handler: bool = False
) -> Dispatcher:
    """
    Build a dispatcher for the configuration and run it to completion.

    With a scenario the run is scripted and deterministic; otherwise random
    worker threads generate the load.

    Args:
        config: Simulation configuration (validated here)
        scenario_path: Optional path to a scenario JSON file
        logger: Logger to use instead of one built from config
        report_sink: Report sink to use instead of logging tables
        install_signal_handler: Route SIGINT to a graceful shutdown

    Returns:
        The dispatcher after teardown (ledger, event log and metrics intact)

    Raises:
        ConfigError: If the configuration is invalid
        ScenarioLoadError: If the scenario cannot be loaded
        SetupFailure: If shared state cannot be created
    """
    config.validate()
    if scenario_path:
        scenario = load_scenario(scenario_path)
        config = dataclasses.replace(
            config,
            resource_totals=list(scenario.resource_totals),
            num_processes=max(config.num_processes, scenario.num_slots),
            duration_s=scenario.duration_s or config.duration_s,
        ).validate()

    clock = VirtualClock(
        detect_interval_ns=config.detect_interval_ns,
        report_interval_ns=config.report_interval_ns,
    )
    if scenario_path:
        channel = ScriptedChannel(clock)
        workers = ScriptedWorkerPool(scenario, clock)
    else:
        channel = queue.Queue()
        workers = ThreadWorkerPool(
            num_resources=len(config.resource_totals),
            max_quantity=max(config.resource_totals),
            max_actions=config.max_worker_actions,
            delay=config.worker_delay,
            seed=config.seed,
        )

    dispatcher = Dispatcher(
        config,
        workers,
        channel=channel,
        clock=clock,
        logger=logger,
        report_sink=report_sink,
    )

    previous_handler = None
    if install_signal_handler:
        previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: dispatcher.request_shutdown())
    try:
        dispatcher.run()
    finally:
        if install_signal_handler:
            signal.signal(signal.SIGINT, previous_handler)
    return dispatcher


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Resource Manager Simulator with deadlock detection and recovery'
    )
    parser.add_argument(
        '-n', '--processes',
        type=int,
        default=1,
        help='Maximum number of concurrent processes (default: 1)'
    )
    parser.add_argument(
        '-s', '--seconds',
        type=int,
        default=1,
        help='Simulated seconds to run (default: 1)'
    )
    parser.add_argument(
        '--scenario',
        type=str,
        help='Replay a scripted scenario JSON file instead of random workers'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default='oss.log',
        help='Log file path (default: oss.log)'
    )
    parser.add_argument(
        '--detect-interval-ms',
        type=int,
        default=1000,
        help='Simulated milliseconds between deadlock detection runs (default: 1000)'
    )
    parser.add_argument(
        '--report-interval-ms',
        type=int,
        default=500,
        help='Simulated milliseconds between resource table reports (default: 500)'
    )
    parser.add_argument(
        '--seed',
        type=int,
        help='Seed for random workers'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the simulator."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return 0 if e.code == 0 else 1

    console = SimulatorLogger()
    config = SimulationConfig(
        num_processes=args.processes,
        duration_s=args.seconds,
        resource_totals=[MAX_INSTANCES] * MAX_RESOURCES,
        detect_interval_ns=args.detect_interval_ms * 1_000_000,
        report_interval_ns=args.report_interval_ms * 1_000_000,
        log_file=args.log_file,
        verbose=args.verbose,
        seed=args.seed,
    )

    try:
        run_simulation(config, scenario_path=args.scenario, install_signal_handler=True)
    except ConfigError as e:
        console.log(f"Invalid configuration: {e}", "error")
        return 1
    except ScenarioLoadError as e:
        console.log(f"Failed to load scenario: {e}", "error")
        return 1
    except SetupFailure as e:
        console.log(str(e), "error")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
