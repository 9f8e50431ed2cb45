"""
Hybrid CPU core control and package power measurement.

Deactivates a subset of the logical processors of a hybrid (performance /
efficiency core) CPU and measures the package power saved, using the Linux
CPU hotplug and powercap (RAPL) sysfs interfaces.

Example usage (programmatic):
    from hybrid_core_power import (
        SysfsCoreStateBackend, RaplEnergyBackend, ActiveSetTracker,
        CoreStateController, PowerMeter, BenchmarkOrchestrator,
    )

    backend = SysfsCoreStateBackend()
    tracker = ActiveSetTracker(backend)
    meter = PowerMeter(RaplEnergyBackend())
    controller = CoreStateController(backend)

    result = BenchmarkOrchestrator(controller, tracker, meter).run()
    print(f"Saved {result.delta_watts:.2f} W")

CLI usage:
    sudo python -m hybrid_core_power benchmark
"""

from .errors import (
    HybridCorePowerError,
    PrivilegeError,
    DependencyMissingError,
    InterfaceUnavailableError,
)

from .backends import (
    CoreStateBackend,
    SysfsCoreStateBackend,
    InMemoryCoreStateBackend,
    EnergyBackend,
    RaplEnergyBackend,
    ScriptedEnergyBackend,
    Clock,
    SystemClock,
    FakeClock,
)

from .topology import (
    ActiveSet,
    ActiveSetTracker,
    CoreType,
    ProcessorRecord,
    parse_cpulist,
    format_cpulist,
    discover_topology,
    read_topology,
)

from .policy import (
    STATIC_POWER_SAVE_IDS,
    derive_power_save_ids,
    resolve_policy_ids,
)

from .control import ControlReport, CoreStateController
from .meter import EnergySample, PowerMeasurement, PowerMeter, energy_delta
from .benchmark import BenchmarkOrchestrator, BenchmarkResult, BenchmarkState
from .monitor import MonitorLoop, MonitorRow, MonitorSummary, summarize

from .config import ToolConfig, load_config, save_config, validate_config

__all__ = [
    # Errors
    'HybridCorePowerError',
    'PrivilegeError',
    'DependencyMissingError',
    'InterfaceUnavailableError',
    # Backends
    'CoreStateBackend',
    'SysfsCoreStateBackend',
    'InMemoryCoreStateBackend',
    'EnergyBackend',
    'RaplEnergyBackend',
    'ScriptedEnergyBackend',
    'Clock',
    'SystemClock',
    'FakeClock',
    # Topology
    'ActiveSet',
    'ActiveSetTracker',
    'CoreType',
    'ProcessorRecord',
    'parse_cpulist',
    'format_cpulist',
    'discover_topology',
    'read_topology',
    # Policy and control
    'STATIC_POWER_SAVE_IDS',
    'derive_power_save_ids',
    'resolve_policy_ids',
    'ControlReport',
    'CoreStateController',
    # Measurement
    'EnergySample',
    'PowerMeasurement',
    'PowerMeter',
    'energy_delta',
    'BenchmarkOrchestrator',
    'BenchmarkResult',
    'BenchmarkState',
    'MonitorLoop',
    'MonitorRow',
    'MonitorSummary',
    'summarize',
    # Config
    'ToolConfig',
    'load_config',
    'save_config',
    'validate_config',
]
