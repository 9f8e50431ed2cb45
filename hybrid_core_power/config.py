"""
Configuration loading and serialization.

Every field has a default matching a stock Linux sysfs layout, so running
without a config file is the normal case.
"""

from dataclasses import dataclass, field, asdict
from typing import List
import json
from pathlib import Path

try:
    import json5
    _HAS_JSON5 = True
except ImportError:
    _HAS_JSON5 = False

from .backends import DEFAULT_COUNTER_BITS, DEFAULT_CPU_ROOT, DEFAULT_RAPL_ZONE
from .policy import POLICY_MODES, STATIC_POWER_SAVE_IDS
from .topology import DEFAULT_PMU_ROOT


# --- Config Dataclasses ---

@dataclass
class PathsSpec:
    """Locations of the OS control surfaces."""
    cpu_root: str = str(DEFAULT_CPU_ROOT)
    pmu_root: str = str(DEFAULT_PMU_ROOT)
    rapl_zone: str = str(DEFAULT_RAPL_ZONE)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PathsSpec":
        return cls(
            cpu_root=data.get("cpu_root", str(DEFAULT_CPU_ROOT)),
            pmu_root=data.get("pmu_root", str(DEFAULT_PMU_ROOT)),
            rapl_zone=data.get("rapl_zone", str(DEFAULT_RAPL_ZONE)),
        )


@dataclass
class TimingSpec:
    """Sampling windows and settling delay, in seconds.

    Args:
        sample_window_s: Window for status and each monitor sample
        benchmark_window_s: Window for each benchmark measurement
        settle_s: Pause after a capacity change before measuring
    """
    sample_window_s: float = 1.0
    benchmark_window_s: float = 4.0
    settle_s: float = 1.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TimingSpec":
        return cls(
            sample_window_s=data.get("sample_window_s", 1.0),
            benchmark_window_s=data.get("benchmark_window_s", 4.0),
            settle_s=data.get("settle_s", 1.0),
        )


@dataclass
class EnergySpec:
    """Energy counter width, used when max_energy_range_uj is not exposed."""
    counter_bits: int = DEFAULT_COUNTER_BITS

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "EnergySpec":
        return cls(counter_bits=data.get("counter_bits", DEFAULT_COUNTER_BITS))


@dataclass
class PolicySpec:
    """Powersave policy selection."""
    mode: str = "auto"  # auto, static, topology
    static_ids: List[int] = field(default_factory=lambda: list(STATIC_POWER_SAVE_IDS))

    def to_dict(self) -> dict:
        return {"mode": self.mode, "static_ids": list(self.static_ids)}

    @classmethod
    def from_dict(cls, data: dict) -> "PolicySpec":
        return cls(
            mode=data.get("mode", "auto"),
            static_ids=list(data.get("static_ids", STATIC_POWER_SAVE_IDS)),
        )


@dataclass
class ToolConfig:
    """
    Complete tool configuration.

    This is the top-level config that gets serialized to/from JSON.
    """
    paths: PathsSpec = field(default_factory=PathsSpec)
    timing: TimingSpec = field(default_factory=TimingSpec)
    energy: EnergySpec = field(default_factory=EnergySpec)
    policy: PolicySpec = field(default_factory=PolicySpec)
    required_tools: List[str] = field(default_factory=lambda: ["lscpu"])

    def to_dict(self) -> dict:
        """Convert config to JSON-serializable dict."""
        return {
            "paths": self.paths.to_dict(),
            "timing": self.timing.to_dict(),
            "energy": self.energy.to_dict(),
            "policy": self.policy.to_dict(),
            "required_tools": list(self.required_tools),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolConfig":
        """Create config from dict (e.g., from JSON)."""
        return cls(
            paths=PathsSpec.from_dict(data.get("paths", {})),
            timing=TimingSpec.from_dict(data.get("timing", {})),
            energy=EnergySpec.from_dict(data.get("energy", {})),
            policy=PolicySpec.from_dict(data.get("policy", {})),
            required_tools=list(data.get("required_tools", ["lscpu"])),
        )


def load_config(path: str | Path) -> ToolConfig:
    """
    Load a tool configuration from a JSON file.

    Supports JSON with comments (JSONC) if json5 is installed.

    Raises:
        FileNotFoundError: If config file doesn't exist
        json.JSONDecodeError: If JSON is invalid
    """
    path = Path(path)
    with open(path, 'r') as f:
        if _HAS_JSON5:
            data = json5.load(f)
        else:
            data = json.load(f)
    return ToolConfig.from_dict(data)


def save_config(config: ToolConfig, path: str | Path) -> None:
    """Write a configuration as indented JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)


def validate_config(config: ToolConfig) -> List[str]:
    """
    Validate a configuration and return list of error messages.

    Returns empty list if config is valid.
    """
    errors = []

    timing = config.timing
    if timing.sample_window_s <= 0:
        errors.append(f"sample_window_s must be positive, got {timing.sample_window_s}")
    if timing.benchmark_window_s <= 0:
        errors.append(f"benchmark_window_s must be positive, got {timing.benchmark_window_s}")
    if timing.settle_s < 0:
        errors.append(f"settle_s must be non-negative, got {timing.settle_s}")

    if not 1 <= config.energy.counter_bits <= 64:
        errors.append(f"counter_bits must be in [1, 64], got {config.energy.counter_bits}")

    if config.policy.mode not in POLICY_MODES:
        errors.append(f"Unknown policy mode: {config.policy.mode}. Valid: {list(POLICY_MODES)}")
    for cpu_id in config.policy.static_ids:
        if not isinstance(cpu_id, int) or cpu_id <= 0:
            errors.append(f"static_ids must be positive integers (processor 0 is protected), got {cpu_id!r}")

    for name, value in config.paths.to_dict().items():
        if not value:
            errors.append(f"paths.{name} must be non-empty")

    return errors
