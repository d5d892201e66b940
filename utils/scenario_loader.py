"""
Scenario Loader for the Resource Manager Simulator.

Loads and validates JSON scenario files that script worker behaviour
against simulated time, so a run can be replayed deterministically.

Format:
    {
      "description": "...",
      "resources": [1, 1],
      "duration_s": 2,
      "processes": [
        {"slot": 0, "start_ms": 0, "exit_ms": 1500,
         "events": [{"at_ms": 0, "type": "request", "resource": 0, "amount": 1}]}
      ]
    }
"""

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.event import EventKind, ResourceEvent
from utils.config import MAX_PROCESSES

NANOS_PER_MS = 1_000_000


class ScenarioLoadError(Exception):
    """Exception raised when scenario file cannot be loaded or is invalid."""
    pass


@dataclass(frozen=True)
class ScriptedEvent:
    """An inbound event due at a given simulated time."""
    at_ns: int
    event: ResourceEvent


@dataclass
class ScriptedProcess:
    """
    One scripted worker.

    Attributes:
        slot: Slot the worker occupies
        start_ns: Simulated time the worker is launched
        exit_ns: Simulated time the worker exits on its own (None: runs until stopped)
        events: Requests/releases it sends, ordered by time
    """
    slot: int
    start_ns: int = 0
    exit_ns: Optional[int] = None
    events: List[ScriptedEvent] = field(default_factory=list)


@dataclass
class Scenario:
    """A loaded scenario."""
    resource_totals: List[int]
    processes: Dict[int, ScriptedProcess]
    description: str = ""
    duration_s: Optional[int] = None

    @property
    def num_slots(self) -> int:
        """Pool size needed to hold every scripted slot."""
        return max(self.processes) + 1 if self.processes else 1


def load_scenario(file_path: str) -> Scenario:
    """
    Load scenario from JSON file.
    
    Args:
        file_path: Path to scenario JSON file
        
    Returns:
        Validated Scenario
        
    Raises:
        ScenarioLoadError: If file cannot be loaded or is invalid
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ScenarioLoadError(f"Scenario file not found: {file_path}")
    except json.JSONDecodeError as e:
        raise ScenarioLoadError(f"Invalid JSON in scenario file: {e}")

    return parse_scenario(data)


def parse_scenario(data: Dict) -> Scenario:
    """
    Build a Scenario from already-decoded JSON data.

    Raises:
        ScenarioLoadError: If a field is missing or out of range
    """
    if not isinstance(data, dict):
        raise ScenarioLoadError("Scenario must be a JSON object")
    if 'resources' not in data:
        raise ScenarioLoadError("Scenario missing 'resources' field")
    if 'processes' not in data:
        raise ScenarioLoadError("Scenario missing 'processes' field")

    totals = data['resources']
    if not isinstance(totals, list) or not totals:
        raise ScenarioLoadError("'resources' must be a non-empty list of totals")
    for i, total in enumerate(totals):
        if not _is_int(total) or total <= 0:
            raise ScenarioLoadError(f"Resource R{i} total must be a positive integer (got {total!r})")

    duration = data.get('duration_s')
    if duration is not None and (not _is_int(duration) or duration < 1):
        raise ScenarioLoadError(f"'duration_s' must be an integer >= 1 (got {duration!r})")

    if not isinstance(data['processes'], list):
        raise ScenarioLoadError("'processes' must be a list")

    processes = {}
    for proc_data in data['processes']:
        process = _load_process(proc_data, len(totals))
        if process.slot in processes:
            raise ScenarioLoadError(f"Slot {process.slot} is scripted more than once")
        processes[process.slot] = process

    return Scenario(
        resource_totals=list(totals),
        processes=processes,
        description=data.get('description', ''),
        duration_s=duration,
    )


def _load_process(proc_data: Dict, num_resources: int) -> ScriptedProcess:
    """
    Load a single scripted process.
    
    Args:
        proc_data: Process dictionary from scenario
        num_resources: Number of resource types in system
        
    Returns:
        ScriptedProcess with its events sorted by time
    """
    if not isinstance(proc_data, dict):
        raise ScenarioLoadError(f"Process entry must be an object (got {proc_data!r})")
    if 'slot' not in proc_data:
        raise ScenarioLoadError("Process missing required field: slot")

    slot = proc_data['slot']
    if not _is_int(slot) or not 0 <= slot < MAX_PROCESSES:
        raise ScenarioLoadError(f"Process slot must be in 0..{MAX_PROCESSES - 1} (got {slot!r})")

    start_ms = proc_data.get('start_ms', 0)
    exit_ms = proc_data.get('exit_ms')
    if not _is_int(start_ms):
        raise ScenarioLoadError(f"P{slot}: start_ms must be an integer (got {start_ms!r})")
    if exit_ms is not None and not _is_int(exit_ms):
        raise ScenarioLoadError(f"P{slot}: exit_ms must be an integer (got {exit_ms!r})")
    if start_ms < 0:
        raise ScenarioLoadError(f"P{slot}: start_ms cannot be negative")
    if exit_ms is not None and exit_ms < start_ms:
        raise ScenarioLoadError(f"P{slot}: exit_ms ({exit_ms}) is before start_ms ({start_ms})")

    raw_events = proc_data.get('events', [])
    if not isinstance(raw_events, list):
        raise ScenarioLoadError(f"P{slot}: 'events' must be a list")

    events = []
    for event in raw_events:
        _validate_event(event, slot, num_resources)
        kind = EventKind.REQUEST if event['type'] == 'request' else EventKind.RELEASE
        events.append(ScriptedEvent(
            at_ns=event['at_ms'] * NANOS_PER_MS,
            event=ResourceEvent(slot, event['resource'], event['amount'], kind),
        ))

    return ScriptedProcess(
        slot=slot,
        start_ns=start_ms * NANOS_PER_MS,
        exit_ns=exit_ms * NANOS_PER_MS if exit_ms is not None else None,
        events=sorted(events, key=lambda e: e.at_ns),
    )


def _validate_event(event: Dict, slot: int, num_resources: int) -> None:
    """
    Validate an event for a process.
    
    Raises:
        ScenarioLoadError: If event is invalid
    """
    if not isinstance(event, dict):
        raise ScenarioLoadError(f"P{slot}: event must be an object (got {event!r})")
    for required in ('at_ms', 'type', 'resource', 'amount'):
        if required not in event:
            raise ScenarioLoadError(f"P{slot}: event missing '{required}' field")

    if event['type'] not in ('request', 'release'):
        raise ScenarioLoadError(f"P{slot}: unknown event type '{event['type']}'")

    for name in ('at_ms', 'resource', 'amount'):
        if not _is_int(event[name]):
            raise ScenarioLoadError(f"P{slot}: event '{name}' must be an integer (got {event[name]!r})")

    if event['at_ms'] < 0:
        raise ScenarioLoadError(f"P{slot}: event time cannot be negative")

    if event['resource'] < 0 or event['resource'] >= num_resources:
        raise ScenarioLoadError(f"P{slot}: invalid resource {event['resource']}")

    if event['amount'] <= 0:
        raise ScenarioLoadError(f"P{slot}: {event['type']} amount must be positive")


def _is_int(value) -> bool:
    # JSON true/false decode to bool, which is an int subclass
    return isinstance(value, int) and not isinstance(value, bool)
