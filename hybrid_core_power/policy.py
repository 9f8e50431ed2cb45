"""
Powersave policy: which logical processors to deactivate.

The derived policy keeps one thread per performance core and the lower half
of the efficiency cores. The static list is the same policy written out for
the Alder Lake-U15 layout (2 P-cores with SMT at 0-3, 8 E-cores at 4-11).
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .topology import CoreType, ProcessorRecord, group_by_physical_core


# P-core siblings 1 and 3, upper half of the E-cores.
STATIC_POWER_SAVE_IDS: Tuple[int, ...] = (1, 3, 8, 9, 10, 11)

POLICY_MODES = ("auto", "static", "topology")


@dataclass
class ResolvedPolicy:
    """Deactivation ids plus how they were obtained."""
    ids: Tuple[int, ...]
    source: str  # "static" or "topology"
    warning: Optional[str] = None


def is_hybrid(records: Iterable[ProcessorRecord]) -> bool:
    """True if both performance and efficiency cores are present."""
    types = {r.core_type for r in records}
    return CoreType.PERFORMANCE in types and CoreType.EFFICIENCY in types


def derive_power_save_ids(records: Sequence[ProcessorRecord]) -> Tuple[int, ...]:
    """
    Derive the deactivation set from topology records.

    - Performance cores: every logical processor except the lowest-numbered
      thread of its physical core.
    - Efficiency cores: the upper half (by id) of the efficiency processors.

    Processor 0 is never included.
    """
    perf = [r for r in records if r.core_type == CoreType.PERFORMANCE]
    eff = sorted(r.cpu_id for r in records if r.core_type == CoreType.EFFICIENCY)

    ids = set()
    for threads in group_by_physical_core(perf).values():
        ids.update(threads[1:])
    ids.update(eff[len(eff) - len(eff) // 2:])

    ids.discard(0)
    return tuple(sorted(ids))


def resolve_policy_ids(
    mode: str,
    records: Sequence[ProcessorRecord],
    static_ids: Sequence[int] = STATIC_POWER_SAVE_IDS,
) -> ResolvedPolicy:
    """
    Pick the deactivation ids for the configured policy mode.

    Args:
        mode: "static", "topology", or "auto"
        records: Topology records (may be empty)
        static_ids: Ids used by the static policy and the auto fallback

    Raises:
        ValueError: Unknown mode, or "topology" mode without a hybrid topology
    """
    static = tuple(sorted(set(static_ids) - {0}))
    if mode == "static":
        return ResolvedPolicy(ids=static, source="static")
    if mode not in POLICY_MODES:
        raise ValueError(f"Unknown policy mode: {mode}. Valid modes: {', '.join(POLICY_MODES)}")

    if is_hybrid(records):
        return ResolvedPolicy(ids=derive_power_save_ids(records), source="topology")

    if mode == "topology":
        raise ValueError("Policy mode 'topology' requires a hybrid (P/E core) topology")
    return ResolvedPolicy(
        ids=static,
        source="static",
        warning=(
            "Hybrid core topology not detected; using static powersave ids "
            f"{list(static)}"
        ),
    )


def alder_lake_u15_records() -> List[ProcessorRecord]:
    """Reference topology: 2 SMT P-cores (0-3) and 8 E-cores (4-11)."""
    records = []
    for cpu_id in range(4):
        core_id = cpu_id // 2
        records.append(ProcessorRecord(
            cpu_id=cpu_id,
            core_type=CoreType.PERFORMANCE,
            core_id=core_id * 4,
            siblings=(core_id * 2, core_id * 2 + 1),
        ))
    for cpu_id in range(4, 12):
        records.append(ProcessorRecord(
            cpu_id=cpu_id,
            core_type=CoreType.EFFICIENCY,
            core_id=cpu_id + 4,
            siblings=(cpu_id,),
        ))
    return records
