"""
Average package power from two energy-counter samples.

    watts = energy_delta_uj * 1000 / elapsed_ns

The counter is fixed-width and wraps; a window spanning a wrap is corrected
with the counter's range so the delta is never negative.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .backends import Clock, EnergyBackend, SystemClock
from .errors import InterfaceUnavailableError


@dataclass(frozen=True)
class EnergySample:
    """Counter value at a monotonic timestamp."""
    timestamp_ns: int
    energy_uj: int


def energy_delta(start_uj: int, end_uj: int, max_range_uj: int) -> int:
    """
    Energy consumed between two counter readings.

    If the end reading is below the start reading the counter wrapped once,
    and the delta is ``(max_range_uj - start_uj) + end_uj``.
    """
    if end_uj >= start_uj:
        return end_uj - start_uj
    return (max_range_uj - start_uj) + end_uj


def average_watts(energy_uj: int, duration_ns: int) -> float:
    """Convert microjoules over nanoseconds to watts; duration is clamped to >= 1 ns."""
    if duration_ns <= 0:
        duration_ns = 1
    return (energy_uj * 1000) / duration_ns


@dataclass(frozen=True)
class PowerMeasurement:
    """Average power over one sampling window."""
    start: EnergySample
    end: EnergySample
    duration_ns: int
    energy_uj: int
    watts: float
    wrapped: bool = False
    degraded: bool = False  # energy counter unavailable, readings are zero

    def to_dict(self) -> dict:
        return {
            "start_ns": self.start.timestamp_ns,
            "start_uj": self.start.energy_uj,
            "end_ns": self.end.timestamp_ns,
            "end_uj": self.end.energy_uj,
            "duration_ns": self.duration_ns,
            "energy_uj": self.energy_uj,
            "watts": round(self.watts, 2),
            "wrapped": self.wrapped,
            "degraded": self.degraded,
        }


class PowerMeter:
    """
    Samples an EnergyBackend across a blocking window.

    Example:
        meter = PowerMeter(RaplEnergyBackend())
        m = meter.measure_average_power(1.0)
        print(f"{m.watts:.2f} W")
    """

    def __init__(self, energy: EnergyBackend, clock: Optional[Clock] = None):
        self.energy = energy
        self.clock = clock or SystemClock()

    def read(self) -> Tuple[EnergySample, bool]:
        """Return (EnergySample, degraded)."""
        try:
            value = self.energy.read_uj()
            degraded = False
        except InterfaceUnavailableError:
            value = 0
            degraded = True
        return EnergySample(timestamp_ns=self.clock.now_ns(), energy_uj=value), degraded

    def measure_average_power(self, duration_s: float) -> PowerMeasurement:
        """
        Measure average power over ``duration_s`` seconds.

        Blocks the caller for the full window. If the counter is unavailable
        at either end the measurement is marked degraded and reports 0 W.
        """
        start, start_degraded = self.read()
        self.clock.sleep(duration_s)
        end, end_degraded = self.read()

        degraded = start_degraded or end_degraded
        duration_ns = max(end.timestamp_ns - start.timestamp_ns, 1)
        if degraded:
            delta = 0
            wrapped = False
        else:
            wrapped = end.energy_uj < start.energy_uj
            delta = energy_delta(start.energy_uj, end.energy_uj, self.energy.max_range_uj)

        return PowerMeasurement(
            start=start,
            end=end,
            duration_ns=duration_ns,
            energy_uj=delta,
            watts=average_watts(delta, duration_ns),
            wrapped=wrapped,
            degraded=degraded,
        )
