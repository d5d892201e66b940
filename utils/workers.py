"""
Worker processes for the Resource Manager Simulator.

Two interchangeable worker pools implement the lifecycle the dispatcher
drives (spawn / poll_exit / terminate / shutdown):

- ThreadWorkerPool runs each worker as a thread that fires random requests
  and releases into a queue.Queue channel.
- ScriptedWorkerPool replays a Scenario against the virtual clock through a
  ScriptedChannel, for deterministic runs.
"""

import dataclasses
import heapq
import itertools
import queue
import random
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from models.clock import VirtualClock
from models.event import EventKind, ResourceEvent
from utils.scenario_loader import Scenario

_pids = itertools.count(1000)


@dataclass(eq=False)
class WorkerHandle:
    """Opaque handle for one launched worker."""
    slot: int
    pid: int
    stop_event: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None
    exit_ns: Optional[int] = None

    def __repr__(self) -> str:
        return f"WorkerHandle(slot={self.slot}, pid={self.pid})"


class RandomWorker(threading.Thread):
    """
    Worker that sends random requests and releases until it runs out of
    actions or is told to stop.

    It only ever releases what it has asked for, though a queued request
    means it can still try to release instances it was never granted.
    """

    def __init__(
        self,
        handle: WorkerHandle,
        channel: queue.Queue,
        num_resources: int,
        max_quantity: int,
        max_actions: int,
        delay: Tuple[float, float],
        rng: random.Random,
    ):
        super().__init__(name=f"worker-P{handle.slot}-{handle.pid}", daemon=True)
        self.handle = handle
        self.channel = channel
        self.num_resources = num_resources
        self.max_quantity = max_quantity
        self.max_actions = max_actions
        self.delay = delay
        self.rng = rng
        self.requested = [0] * num_resources

    def next_event(self) -> ResourceEvent:
        """Pick the next request or release."""
        resource = self.rng.randrange(self.num_resources)
        quantity = self.rng.randint(1, self.max_quantity)
        wants_release = self.rng.randrange(2) == 0

        if wants_release and self.requested[resource] > 0:
            quantity = min(quantity, self.requested[resource])
            self.requested[resource] -= quantity
            kind = EventKind.RELEASE
        else:
            self.requested[resource] += quantity
            kind = EventKind.REQUEST

        return ResourceEvent(self.handle.slot, resource, quantity, kind, sender=self.handle.pid)

    def run(self) -> None:
        for _ in range(self.max_actions):
            if self.handle.stop_event.is_set():
                break
            self.channel.put(self.next_event())
            if self.handle.stop_event.wait(self.rng.uniform(*self.delay)):
                break


class ThreadWorkerPool:
    """Launches RandomWorker threads into slots."""

    def __init__(
        self,
        num_resources: int,
        max_quantity: int,
        max_actions: int = 20,
        delay: Tuple[float, float] = (0.001, 0.003),
        seed: Optional[int] = None,
    ):
        self.num_resources = num_resources
        self.max_quantity = max_quantity
        self.max_actions = max_actions
        self.delay = delay
        self._rng = random.Random(seed)
        self._handles: List[WorkerHandle] = []

    def spawn(self, slot: int, channel: queue.Queue) -> WorkerHandle:
        handle = WorkerHandle(slot=slot, pid=next(_pids))
        worker = RandomWorker(
            handle,
            channel,
            self.num_resources,
            self.max_quantity,
            self.max_actions,
            self.delay,
            random.Random(self._rng.random()),
        )
        handle.thread = worker
        self._prune()
        self._handles.append(handle)
        worker.start()
        return handle

    def poll_exit(self, handle: WorkerHandle) -> bool:
        exited = handle.thread is not None and not handle.thread.is_alive()
        if exited:
            self._prune()
        return exited

    def running(self) -> int:
        """Number of launched workers whose thread has not finished."""
        self._prune()
        return len(self._handles)

    def _prune(self) -> None:
        self._handles = [
            h for h in self._handles if h.thread is None or h.thread.is_alive()
        ]

    def terminate(self, handle: WorkerHandle) -> None:
        handle.stop_event.set()

    def shutdown(self, timeout: float = 1.0) -> None:
        """Stop every worker ever launched and wait for the threads to finish."""
        for handle in self._handles:
            handle.stop_event.set()
        for handle in self._handles:
            if handle.thread is not None:
                handle.thread.join(timeout)
        self._handles.clear()


class ScriptedChannel:
    """
    Channel that releases scripted events once the virtual clock reaches
    their due time. Events put directly are due immediately.

    Mirrors the queue.Queue calls the dispatcher uses (get, get_nowait, put);
    get never blocks on real time.
    """

    def __init__(self, clock: VirtualClock):
        self.clock = clock
        self._heap: list = []
        self._seq = itertools.count()

    def schedule(self, at_ns: int, event: ResourceEvent) -> None:
        heapq.heappush(self._heap, (at_ns, next(self._seq), event))

    def put(self, event: ResourceEvent) -> None:
        self.schedule(self.clock.now_ns, event)

    def get_nowait(self) -> ResourceEvent:
        if self._heap and self._heap[0][0] <= self.clock.now_ns:
            return heapq.heappop(self._heap)[2]
        raise queue.Empty

    def get(self, block: bool = True, timeout: Optional[float] = None) -> ResourceEvent:
        return self.get_nowait()

    def discard_sender(self, pid: int) -> int:
        """Drop undelivered events from one worker. Returns how many were dropped."""
        kept = [item for item in self._heap if item[2].sender != pid]
        dropped = len(self._heap) - len(kept)
        heapq.heapify(kept)
        self._heap = kept
        return dropped

    def __len__(self) -> int:
        return len(self._heap)


class ScriptedWorkerPool:
    """Launches the workers a Scenario scripts, each at its start time."""

    def __init__(self, scenario: Scenario, clock: VirtualClock):
        self.scenario = scenario
        self.clock = clock
        self._launched: Dict[int, WorkerHandle] = {}
        self._channel: Optional[ScriptedChannel] = None

    def spawn(self, slot: int, channel: ScriptedChannel) -> Optional[WorkerHandle]:
        """
        Launch the scripted worker for a slot if it is due.

        Returns:
            Handle of the launched worker, or None when the slot has no worker
            due (not scripted, already launched, or start time not reached)
        """
        process = self.scenario.processes.get(slot)
        if process is None or slot in self._launched:
            return None
        if self.clock.now_ns < process.start_ns:
            return None

        handle = WorkerHandle(slot=slot, pid=next(_pids), exit_ns=process.exit_ns)
        for scripted in process.events:
            event = dataclasses.replace(scripted.event, sender=handle.pid)
            channel.schedule(scripted.at_ns, event)
        self._launched[slot] = handle
        self._channel = channel
        return handle

    def poll_exit(self, handle: WorkerHandle) -> bool:
        if handle.stop_event.is_set():
            return True
        return handle.exit_ns is not None and self.clock.now_ns >= handle.exit_ns

    def terminate(self, handle: WorkerHandle) -> None:
        handle.stop_event.set()
        if self._channel is not None:
            self._channel.discard_sender(handle.pid)

    def shutdown(self, timeout: float = 1.0) -> None:
        for handle in self._launched.values():
            handle.stop_event.set()
