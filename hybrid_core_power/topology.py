"""
Active-set tracking and hybrid topology queries.

The kernel reports processor lists in cpulist notation ("0-3,8-11"); this
module expands them into canonical ActiveSet values and reads per-processor
topology records (core type, sibling group) from sysfs.
"""

import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from .backends import DEFAULT_CPU_ROOT, CoreStateBackend
from .errors import InterfaceUnavailableError


DEFAULT_PMU_ROOT = Path("/sys/devices")
LSCPU_COMMAND = ["lscpu", "-e=CPU,CORE,NODE,SOCKET,MAXMHZ,MINMHZ"]
REPORT_MAX_LINES = 20


# --- cpulist notation ---

def parse_cpulist(text: str) -> List[int]:
    """
    Expand cpulist notation into a sorted list of ids.

    Accepts ranges and single ids separated by commas, e.g. "0-3,8-11" or
    "0,2,4-5". An empty string yields an empty list.

    Raises:
        ValueError: On malformed entries or descending ranges
    """
    ids = set()
    text = text.strip()
    if not text:
        return []
    for part in text.split(','):
        part = part.strip()
        if not part:
            raise ValueError(f"Empty entry in cpulist: {text!r}")
        if '-' in part:
            start_s, end_s = part.split('-', 1)
            start, end = int(start_s), int(end_s)
            if start < 0 or end < start:
                raise ValueError(f"Invalid range {part!r} in cpulist: {text!r}")
            ids.update(range(start, end + 1))
        else:
            cpu_id = int(part)
            if cpu_id < 0:
                raise ValueError(f"Negative id in cpulist: {text!r}")
            ids.add(cpu_id)
    return sorted(ids)


def format_cpulist(ids: Iterable[int]) -> str:
    """Compress ids into cpulist notation (inverse of parse_cpulist)."""
    ordered = sorted(set(ids))
    if not ordered:
        return ""
    parts = []
    start = prev = ordered[0]
    for cpu_id in ordered[1:]:
        if cpu_id == prev + 1:
            prev = cpu_id
            continue
        parts.append(f"{start}-{prev}" if prev != start else str(start))
        start = prev = cpu_id
    parts.append(f"{start}-{prev}" if prev != start else str(start))
    return ",".join(parts)


# --- ActiveSet ---

@dataclass(frozen=True)
class ActiveSet:
    """
    Set of active logical processor ids at one instant.

    Two ActiveSets are equal iff their id sets are equal; ``str()`` gives the
    compressed cpulist form.
    """
    ids: FrozenSet[int] = field(default_factory=frozenset)

    @classmethod
    def of(cls, ids: Iterable[int], total: Optional[int] = None) -> "ActiveSet":
        ids = frozenset(ids)
        for cpu_id in ids:
            if cpu_id < 0 or (total is not None and cpu_id >= total):
                raise ValueError(
                    f"Processor id {cpu_id} out of range for {total} logical processors"
                )
        return cls(ids=ids)

    @classmethod
    def from_cpulist(cls, text: str, total: Optional[int] = None) -> "ActiveSet":
        return cls.of(parse_cpulist(text), total=total)

    @property
    def sorted_ids(self) -> Tuple[int, ...]:
        return tuple(sorted(self.ids))

    def __contains__(self, cpu_id: int) -> bool:
        return cpu_id in self.ids

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self):
        return iter(self.sorted_ids)

    def __str__(self) -> str:
        return format_cpulist(self.ids)


class ActiveSetTracker:
    """Reads the OS-reported active processors as an ActiveSet."""

    def __init__(self, backend: CoreStateBackend):
        self.backend = backend

    def total_count(self) -> int:
        """Number of logical processors (highest possible id + 1)."""
        possible = self.backend.possible_cpulist()
        if possible:
            ids = parse_cpulist(possible)
            if ids:
                return ids[-1] + 1
        return os.cpu_count() or 1

    def current_active_set(self) -> ActiveSet:
        total = self.total_count()
        online = self.backend.online_cpulist()
        if online is None:
            # No online list: assume every processor is active.
            return ActiveSet.of(range(total), total=total)
        return ActiveSet.from_cpulist(online, total=total)

    @staticmethod
    def equal(a: ActiveSet, b: ActiveSet) -> bool:
        return a.ids == b.ids


# --- Topology records ---

class CoreType(Enum):
    PERFORMANCE = "performance"
    EFFICIENCY = "efficiency"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProcessorRecord:
    """Topology of one logical processor."""
    cpu_id: int
    core_type: CoreType = CoreType.UNKNOWN
    package_id: int = 0
    core_id: int = 0
    siblings: Tuple[int, ...] = ()

    @property
    def protected(self) -> bool:
        """Processor 0 is never deactivated."""
        return self.cpu_id == 0

    @property
    def physical_core(self) -> Tuple[int, int]:
        return (self.package_id, self.core_id)


def _read_int(path: Path) -> Optional[int]:
    try:
        with open(path, 'r') as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        return None


def _read_cpulist_file(path: Path) -> List[int]:
    try:
        with open(path, 'r') as f:
            return parse_cpulist(f.read())
    except (OSError, ValueError):
        return []


def read_topology(
    cpu_root: Path = DEFAULT_CPU_ROOT,
    pmu_root: Path = DEFAULT_PMU_ROOT,
) -> List[ProcessorRecord]:
    """
    Read topology records for every processor that exposes them.

    Core type comes from the hybrid PMU lists (``cpu_core/cpus`` for
    performance cores, ``cpu_atom/cpus`` for efficiency cores). Processors
    whose ``topology`` directory is missing (offline ones) are skipped;
    use discover_topology() for records covering every processor.

    Args:
        cpu_root: sysfs cpu directory
        pmu_root: directory holding the ``cpu_core``/``cpu_atom`` PMU nodes

    Returns:
        Records sorted by cpu_id
    """
    cpu_root = Path(cpu_root)
    pmu_root = Path(pmu_root)
    performance = set(_read_cpulist_file(pmu_root / "cpu_core" / "cpus"))
    efficiency = set(_read_cpulist_file(pmu_root / "cpu_atom" / "cpus"))

    records = []
    for entry in cpu_root.glob("cpu[0-9]*"):
        suffix = entry.name[3:]
        if not suffix.isdigit():
            continue
        cpu_id = int(suffix)
        topo = entry / "topology"
        core_id = _read_int(topo / "core_id")
        package_id = _read_int(topo / "physical_package_id")
        if core_id is None or package_id is None:
            continue

        if cpu_id in performance:
            core_type = CoreType.PERFORMANCE
        elif cpu_id in efficiency:
            core_type = CoreType.EFFICIENCY
        else:
            core_type = CoreType.UNKNOWN

        siblings = _read_cpulist_file(topo / "thread_siblings_list") or [cpu_id]
        records.append(ProcessorRecord(
            cpu_id=cpu_id,
            core_type=core_type,
            package_id=package_id,
            core_id=core_id,
            siblings=tuple(siblings),
        ))
    return sorted(records, key=lambda r: r.cpu_id)


def discover_topology(
    backend: CoreStateBackend,
    cpu_root: Path = DEFAULT_CPU_ROOT,
    pmu_root: Path = DEFAULT_PMU_ROOT,
) -> List[ProcessorRecord]:
    """
    Read topology records for every processor, including offline ones.

    The kernel removes an offline processor's ``topology`` directory and
    drops it from its siblings' lists, so records read while processors are
    deactivated describe the current state rather than the hardware.
    Deactivated processors are brought online for the read and returned to
    their previous state afterwards.

    Raises:
        InterfaceUnavailableError: If a processor cannot be deactivated again
    """
    records = read_topology(cpu_root, pmu_root)
    known = {r.cpu_id for r in records}
    total = ActiveSetTracker(backend).total_count()
    offline = [
        cpu_id for cpu_id in range(total)
        if cpu_id not in known
        and backend.is_controllable(cpu_id)
        and not backend.is_active(cpu_id)
    ]
    if not offline:
        return records

    woken = []
    try:
        for cpu_id in offline:
            try:
                backend.set_active(cpu_id, True)
            except InterfaceUnavailableError:
                continue
            woken.append(cpu_id)
        if woken:
            records = read_topology(cpu_root, pmu_root)
    finally:
        for cpu_id in woken:
            backend.set_active(cpu_id, False)
    return records


def group_by_physical_core(records: Iterable[ProcessorRecord]) -> Dict[Tuple[int, int], List[int]]:
    """Map (package_id, core_id) -> sorted logical ids on that core."""
    groups: Dict[Tuple[int, int], List[int]] = {}
    for record in records:
        groups.setdefault(record.physical_core, []).append(record.cpu_id)
    return {key: sorted(ids) for key, ids in groups.items()}


def topology_report(command: Optional[List[str]] = None, max_lines: int = REPORT_MAX_LINES) -> str:
    """
    Human-readable topology table from ``lscpu``.

    Raises:
        FileNotFoundError: If the command is not installed
        subprocess.CalledProcessError: If it exits non-zero
    """
    command = command or LSCPU_COMMAND
    result = subprocess.run(command, capture_output=True, text=True, check=True)
    lines = result.stdout.splitlines()
    return "\n".join(lines[:max_lines])
