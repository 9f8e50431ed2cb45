"""
Baseline vs. powersave benchmark.

Runs a fixed, linear sequence: restore every processor, settle, measure;
apply the powersave policy, settle, measure; report the difference.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .backends import Clock
from .control import ControlReport, CoreStateController
from .meter import PowerMeasurement, PowerMeter
from .topology import ActiveSet, ActiveSetTracker


DEFAULT_WINDOW_S = 4.0
DEFAULT_SETTLE_S = 1.0


class BenchmarkState(Enum):
    IDLE = "idle"
    RESTORING_BASELINE = "restoring_baseline"
    MEASURING_BASELINE = "measuring_baseline"
    APPLYING_POLICY = "applying_policy"
    MEASURING_REDUCED = "measuring_reduced"
    DONE = "done"


def percent_saved(baseline_watts: float, reduced_watts: float) -> Optional[float]:
    """Percentage of baseline power saved; None when baseline power is zero."""
    if baseline_watts == 0:
        return None
    return (baseline_watts - reduced_watts) / baseline_watts * 100


@dataclass
class BenchmarkResult:
    """Full-capacity and reduced-capacity measurements and their difference."""
    baseline_active: ActiveSet
    baseline: PowerMeasurement
    reduced_active: ActiveSet
    reduced: PowerMeasurement
    policy_ids: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def delta_watts(self) -> float:
        return self.baseline.watts - self.reduced.watts

    @property
    def percent(self) -> Optional[float]:
        return percent_saved(self.baseline.watts, self.reduced.watts)

    def to_dict(self) -> dict:
        percent = self.percent
        return {
            "baseline": {
                "active": str(self.baseline_active),
                "measurement": self.baseline.to_dict(),
            },
            "reduced": {
                "active": str(self.reduced_active),
                "measurement": self.reduced.to_dict(),
            },
            "policy_ids": list(self.policy_ids),
            "delta_watts": round(self.delta_watts, 2),
            "percent_saved": round(percent, 2) if percent is not None else None,
            "warnings": list(self.warnings),
        }


ProgressCallback = Callable[[BenchmarkState, dict], None]


class BenchmarkOrchestrator:
    """
    Sequences the baseline and powersave measurements.

    The orchestrator is single-use: once it reaches DONE it cannot be run
    again. Degraded readings and uncontrollable processors are recorded as
    warnings on the result; nothing is retried.

    Example:
        orchestrator = BenchmarkOrchestrator(controller, tracker, meter)
        result = orchestrator.run()
        print(result.delta_watts, result.percent)
    """

    def __init__(
        self,
        controller: CoreStateController,
        tracker: ActiveSetTracker,
        meter: PowerMeter,
        clock: Optional[Clock] = None,
        window_s: float = DEFAULT_WINDOW_S,
        settle_s: float = DEFAULT_SETTLE_S,
        progress: Optional[ProgressCallback] = None,
    ):
        self.controller = controller
        self.tracker = tracker
        self.meter = meter
        self.clock = clock or meter.clock
        self.window_s = window_s
        self.settle_s = settle_s
        self.progress = progress
        self.state = BenchmarkState.IDLE
        self.warnings: List[str] = []

    def _enter(self, state: BenchmarkState, **details) -> None:
        self.state = state
        if self.progress is not None:
            self.progress(state, details)

    def _record(self, report: ControlReport) -> None:
        self.warnings.extend(report.warnings())

    def _measure(self, label: str) -> PowerMeasurement:
        measurement = self.meter.measure_average_power(self.window_s)
        if measurement.degraded:
            self.warnings.append(f"Energy counter unavailable during {label} measurement; reporting 0 W")
        return measurement

    def run(self) -> BenchmarkResult:
        if self.state != BenchmarkState.IDLE:
            raise RuntimeError(f"Benchmark already run (state: {self.state.value})")

        self._enter(BenchmarkState.RESTORING_BASELINE)
        self._record(self.controller.restore_all(self.tracker.total_count()))
        self.clock.sleep(self.settle_s)

        baseline_active = self.tracker.current_active_set()
        self._enter(BenchmarkState.MEASURING_BASELINE, active=baseline_active)
        baseline = self._measure("baseline")

        self._enter(BenchmarkState.APPLYING_POLICY, baseline=baseline)
        self._record(self.controller.apply_power_save_policy())
        self.clock.sleep(self.settle_s)

        reduced_active = self.tracker.current_active_set()
        self._enter(BenchmarkState.MEASURING_REDUCED, active=reduced_active)
        reduced = self._measure("powersave")

        result = BenchmarkResult(
            baseline_active=baseline_active,
            baseline=baseline,
            reduced_active=reduced_active,
            reduced=reduced,
            policy_ids=list(self.controller.policy_ids),
            warnings=list(self.warnings),
        )
        if result.percent is None:
            result.warnings.append("Baseline power is 0 W; efficiency gain is undefined")
        self._enter(BenchmarkState.DONE, result=result)
        return result
