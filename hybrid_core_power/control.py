"""
Applying and reverting processor activation policies.

Every write goes through CoreStateController, which never deactivates
processor 0 and degrades per processor when a control file is missing.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .backends import CoreStateBackend
from .errors import InterfaceUnavailableError
from .policy import STATIC_POWER_SAVE_IDS


PROTECTED_CPU = 0


@dataclass
class ControlReport:
    """Outcome of one or more activation requests."""
    changed: Dict[int, bool] = field(default_factory=dict)    # id -> new state
    unchanged: List[int] = field(default_factory=list)        # already in requested state
    protected: List[int] = field(default_factory=list)
    unavailable: Dict[int, str] = field(default_factory=dict)  # id -> reason

    @property
    def degraded(self) -> bool:
        """True if any requested processor could not be controlled."""
        return bool(self.unavailable)

    def merge(self, other: "ControlReport") -> "ControlReport":
        self.changed.update(other.changed)
        self.unchanged.extend(other.unchanged)
        self.protected.extend(other.protected)
        self.unavailable.update(other.unavailable)
        return self

    def warnings(self) -> List[str]:
        return [
            f"Unable to control CPU {cpu_id} ({reason})"
            for cpu_id, reason in sorted(self.unavailable.items())
        ]

    def to_dict(self) -> dict:
        return {
            "changed": {str(k): v for k, v in sorted(self.changed.items())},
            "unchanged": sorted(self.unchanged),
            "protected": sorted(self.protected),
            "unavailable": {str(k): v for k, v in sorted(self.unavailable.items())},
        }


class CoreStateController:
    """
    Sets processor activation state through a CoreStateBackend.

    Example:
        controller = CoreStateController(SysfsCoreStateBackend(), policy_ids=(1, 3))
        report = controller.apply_power_save_policy()
        controller.restore_all(12)
    """

    def __init__(self, backend: CoreStateBackend, policy_ids: Sequence[int] = STATIC_POWER_SAVE_IDS):
        self.backend = backend
        self.policy_ids = tuple(policy_ids)

    def set_active(self, cpu_id: int, active: bool) -> ControlReport:
        """
        Request an activation state for one processor.

        Processor 0 is skipped. A missing or unwritable control file marks the
        processor unavailable in the report instead of raising. Re-applying a
        state that already holds performs no write.
        """
        report = ControlReport()
        if cpu_id == PROTECTED_CPU:
            report.protected.append(cpu_id)
            return report
        if not self.backend.is_controllable(cpu_id):
            report.unavailable[cpu_id] = "control file not found"
            return report

        try:
            if self.backend.is_active(cpu_id) == active:
                report.unchanged.append(cpu_id)
                return report
            self.backend.set_active(cpu_id, active)
        except InterfaceUnavailableError as e:
            report.unavailable[cpu_id] = e.reason
            return report

        report.changed[cpu_id] = active
        return report

    def _set_many(self, ids: Sequence[int], active: bool) -> ControlReport:
        report = ControlReport()
        for cpu_id in ids:
            report.merge(self.set_active(cpu_id, active))
        return report

    def apply_power_save_policy(self) -> ControlReport:
        """Deactivate every processor in the policy."""
        return self._set_many(self.policy_ids, False)

    def restore_all(self, total_count: int) -> ControlReport:
        """Activate every processor from 1 to total_count - 1."""
        return self._set_many(range(1, total_count), True)
