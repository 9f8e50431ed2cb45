"""
Narrow capabilities over the privileged OS surfaces.

Three seams are abstracted so that the controller, meter, and loops can run
against deterministic in-memory doubles:

- CoreStateBackend: one settable boolean per logical processor
  (sysfs ``cpuN/online``), plus the kernel's ``online``/``possible`` lists.
- EnergyBackend: a monotonic microjoule counter (powercap ``energy_uj``).
- Clock: monotonic nanoseconds, wall time, and blocking sleep.
"""

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .errors import InterfaceUnavailableError


DEFAULT_CPU_ROOT = Path("/sys/devices/system/cpu")
DEFAULT_RAPL_ZONE = Path("/sys/class/powercap/intel-rapl/intel-rapl:0")
DEFAULT_COUNTER_BITS = 32


def _read_text(path: Path) -> str:
    with open(path, 'r') as f:
        return f.read().strip()


# --- Processor activation state ---

class CoreStateBackend(ABC):
    """Activation state of logical processors."""

    @abstractmethod
    def is_controllable(self, cpu_id: int) -> bool:
        """Return True if the activation state of cpu_id can be written."""

    @abstractmethod
    def is_active(self, cpu_id: int) -> bool:
        """Return the current activation state. Raises InterfaceUnavailableError."""

    @abstractmethod
    def set_active(self, cpu_id: int, active: bool) -> None:
        """Write the activation state. Raises InterfaceUnavailableError."""

    @abstractmethod
    def online_cpulist(self) -> Optional[str]:
        """Kernel-reported active list in cpulist notation, or None if absent."""

    @abstractmethod
    def possible_cpulist(self) -> Optional[str]:
        """Kernel-reported possible list in cpulist notation, or None if absent."""


class SysfsCoreStateBackend(CoreStateBackend):
    """
    CPU hotplug through ``/sys/devices/system/cpu``.

    Processors without an ``online`` file (usually cpu0) cannot be toggled and
    are reported as active.
    """

    def __init__(self, cpu_root: Path = DEFAULT_CPU_ROOT):
        self.cpu_root = Path(cpu_root)

    def _online_file(self, cpu_id: int) -> Path:
        return self.cpu_root / f"cpu{cpu_id}" / "online"

    def is_controllable(self, cpu_id: int) -> bool:
        return self._online_file(cpu_id).is_file()

    def is_active(self, cpu_id: int) -> bool:
        path = self._online_file(cpu_id)
        if not path.is_file():
            return (self.cpu_root / f"cpu{cpu_id}").is_dir()
        try:
            return _read_text(path) == "1"
        except OSError as e:
            raise InterfaceUnavailableError(str(path), e.strerror or str(e)) from e

    def set_active(self, cpu_id: int, active: bool) -> None:
        path = self._online_file(cpu_id)
        if not path.is_file():
            raise InterfaceUnavailableError(str(path))
        try:
            with open(path, 'w') as f:
                f.write("1" if active else "0")
        except OSError as e:
            raise InterfaceUnavailableError(str(path), e.strerror or str(e)) from e

    def _read_list(self, name: str) -> Optional[str]:
        path = self.cpu_root / name
        if not path.is_file():
            return None
        return _read_text(path)

    def online_cpulist(self) -> Optional[str]:
        return self._read_list("online")

    def possible_cpulist(self) -> Optional[str]:
        return self._read_list("possible")


class InMemoryCoreStateBackend(CoreStateBackend):
    """
    Dictionary-backed processor states for tests and dry runs.

    Args:
        total: Number of logical processors (ids 0..total-1)
        missing: Ids whose control file is absent (cannot be toggled)
        inactive: Ids that start deactivated
    """

    def __init__(
        self,
        total: int,
        missing: Iterable[int] = (),
        inactive: Iterable[int] = (),
    ):
        self.total = total
        self.missing = set(missing) | {0}
        self.states: Dict[int, bool] = {i: True for i in range(total)}
        for cpu_id in inactive:
            self.states[cpu_id] = False
        self.writes: List[tuple] = []

    def is_controllable(self, cpu_id: int) -> bool:
        return 0 <= cpu_id < self.total and cpu_id not in self.missing

    def is_active(self, cpu_id: int) -> bool:
        return self.states.get(cpu_id, False)

    def set_active(self, cpu_id: int, active: bool) -> None:
        if not self.is_controllable(cpu_id):
            raise InterfaceUnavailableError(f"cpu{cpu_id}/online")
        self.states[cpu_id] = active
        self.writes.append((cpu_id, active))

    def online_cpulist(self) -> Optional[str]:
        # Imported here: topology depends on this module for its backends.
        from .topology import format_cpulist
        return format_cpulist(i for i, on in self.states.items() if on)

    def possible_cpulist(self) -> Optional[str]:
        return f"0-{self.total - 1}"


# --- Energy counter ---

class EnergyBackend(ABC):
    """Monotonic, fixed-width energy accumulator in microjoules."""

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether the counter can currently be read."""

    @abstractmethod
    def read_uj(self) -> int:
        """Read the counter. Raises InterfaceUnavailableError."""

    @property
    @abstractmethod
    def max_range_uj(self) -> int:
        """Counter modulus: readings run from 0 to max_range_uj - 1."""


class RaplEnergyBackend(EnergyBackend):
    """
    Package energy from a powercap zone (``intel-rapl:0`` by default).

    ``max_energy_range_uj`` holds the largest value the counter reaches, so the
    wrap modulus is one more than it. When the kernel does not expose it the
    counter is assumed to be ``counter_bits`` wide.
    """

    def __init__(self, zone: Path = DEFAULT_RAPL_ZONE, counter_bits: int = DEFAULT_COUNTER_BITS):
        self.zone = Path(zone)
        self.counter_bits = counter_bits
        self._max_range: Optional[int] = None

    @property
    def energy_file(self) -> Path:
        return self.zone / "energy_uj"

    @property
    def available(self) -> bool:
        return self.energy_file.is_file()

    def read_uj(self) -> int:
        try:
            return int(_read_text(self.energy_file))
        except FileNotFoundError as e:
            raise InterfaceUnavailableError(str(self.energy_file)) from e
        except (OSError, ValueError) as e:
            raise InterfaceUnavailableError(str(self.energy_file), str(e)) from e

    @property
    def max_range_uj(self) -> int:
        if self._max_range is None:
            path = self.zone / "max_energy_range_uj"
            try:
                self._max_range = int(_read_text(path)) + 1
            except (OSError, ValueError):
                self._max_range = 2 ** self.counter_bits
        return self._max_range


class ScriptedEnergyBackend(EnergyBackend):
    """
    Replays a fixed sequence of counter values; the last value repeats.

    An empty sequence behaves as an unavailable counter.
    """

    def __init__(self, values: Iterable[int] = (), max_range_uj: int = 2 ** DEFAULT_COUNTER_BITS):
        self.values = list(values)
        self._max_range = max_range_uj
        self.reads = 0

    @property
    def available(self) -> bool:
        return bool(self.values)

    def read_uj(self) -> int:
        if not self.values:
            raise InterfaceUnavailableError("energy_uj")
        value = self.values[min(self.reads, len(self.values) - 1)]
        self.reads += 1
        return value

    @property
    def max_range_uj(self) -> int:
        return self._max_range


# --- Time ---

class Clock(ABC):
    """Time source and blocking wait used for sampling and settling."""

    @abstractmethod
    def now_ns(self) -> int:
        """Monotonic time in nanoseconds."""

    @abstractmethod
    def wall_time(self) -> datetime:
        """Local wall-clock time, for display."""

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Block the caller for the given duration."""


class SystemClock(Clock):
    def now_ns(self) -> int:
        return time.monotonic_ns()

    def wall_time(self) -> datetime:
        return datetime.now()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class FakeClock(Clock):
    """Deterministic clock: time only advances when sleep() is called."""

    def __init__(self, start: Optional[datetime] = None, start_ns: int = 0):
        self._start = start or datetime(2024, 1, 1, 12, 0, 0)
        self._start_ns = start_ns
        self._ns = start_ns
        self.sleeps: List[float] = []

    def now_ns(self) -> int:
        return self._ns

    def wall_time(self) -> datetime:
        return self._start + timedelta(microseconds=(self._ns - self._start_ns) / 1000)

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._ns += int(round(seconds * 1_000_000_000))
