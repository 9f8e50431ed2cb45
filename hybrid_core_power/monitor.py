"""
Continuous power monitoring correlated with the active processor set.

Each sample captures the active set, measures power over a blocking window,
and captures the active set again. A sample whose two captures differ is
transitional: its wattage spans a topology change.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional

import numpy as np

from .backends import Clock
from .meter import PowerMeasurement, PowerMeter
from .topology import ActiveSet, ActiveSetTracker


DEFAULT_WINDOW_S = 1.0
TRANSITION_MARK = "*"


@dataclass(frozen=True)
class MonitorRow:
    timestamp: datetime
    pre: ActiveSet
    post: ActiveSet
    measurement: PowerMeasurement

    @property
    def transitional(self) -> bool:
        return self.pre != self.post

    @property
    def label(self) -> str:
        """Active set as captured before the window, marked if it changed."""
        text = str(self.pre)
        return text + TRANSITION_MARK if self.transitional else text

    @property
    def watts(self) -> float:
        return self.measurement.watts


@dataclass
class MonitorSummary:
    """Statistics over the stable (non-transitional) samples of a run."""
    samples: int
    transitional: int
    mean_watts: Optional[float] = None
    std_watts: Optional[float] = None
    min_watts: Optional[float] = None
    max_watts: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "samples": self.samples,
            "transitional": self.transitional,
            "mean_watts": self.mean_watts,
            "std_watts": self.std_watts,
            "min_watts": self.min_watts,
            "max_watts": self.max_watts,
        }


def summarize(rows: Iterable[MonitorRow]) -> MonitorSummary:
    """Aggregate monitor rows; transitional samples are excluded from the statistics."""
    rows = list(rows)
    stable = np.array([r.watts for r in rows if not r.transitional], dtype=float)
    summary = MonitorSummary(
        samples=len(rows),
        transitional=sum(1 for r in rows if r.transitional),
    )
    if stable.size:
        summary.mean_watts = float(np.mean(stable))
        summary.std_watts = float(np.std(stable))
        summary.min_watts = float(np.min(stable))
        summary.max_watts = float(np.max(stable))
    return summary


class MonitorLoop:
    """
    Repeated power sampling with transitional detection.

    The loop never ends on its own; the consumer stops iterating or the
    operator interrupts it. Only the meter's window blocks.
    """

    def __init__(
        self,
        tracker: ActiveSetTracker,
        meter: PowerMeter,
        window_s: float = DEFAULT_WINDOW_S,
        clock: Optional[Clock] = None,
    ):
        self.tracker = tracker
        self.meter = meter
        self.window_s = window_s
        self.clock = clock or meter.clock

    def sample(self) -> MonitorRow:
        pre = self.tracker.current_active_set()
        measurement = self.meter.measure_average_power(self.window_s)
        post = self.tracker.current_active_set()
        return MonitorRow(
            timestamp=self.clock.wall_time(),
            pre=pre,
            post=post,
            measurement=measurement,
        )

    def rows(self, limit: Optional[int] = None) -> Iterator[MonitorRow]:
        """Yield samples forever, or ``limit`` samples if given."""
        count = 0
        while limit is None or count < limit:
            yield self.sample()
            count += 1
