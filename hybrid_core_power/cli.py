"""
Command-line interface.

Usage:
    sudo python -m hybrid_core_power status
    sudo python -m hybrid_core_power powersave -v
    sudo python -m hybrid_core_power restore
    sudo python -m hybrid_core_power monitor
    sudo python -m hybrid_core_power benchmark --json
"""

import argparse
import json
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from . import formatter as fmt
from .backends import (
    Clock,
    CoreStateBackend,
    EnergyBackend,
    RaplEnergyBackend,
    SysfsCoreStateBackend,
    SystemClock,
)
from .benchmark import BenchmarkOrchestrator, BenchmarkResult, BenchmarkState
from .config import ToolConfig, load_config, validate_config
from .control import ControlReport, CoreStateController
from .errors import DependencyMissingError, InterfaceUnavailableError, PrivilegeError
from .meter import PowerMeter
from .monitor import MonitorLoop, MonitorRow, summarize
from .policy import ResolvedPolicy, resolve_policy_ids
from .topology import ActiveSetTracker, discover_topology, topology_report


COMMANDS = ("status", "powersave", "restore", "monitor", "benchmark")
USAGE = "Usage: sudo hybrid-core-power {status|powersave|restore|monitor|benchmark}"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

MONITOR_HEADERS = ("Time", "Active Processor IDs", "Power (W)")
MONITOR_WIDTHS = (10, 20, 10)


def check_preconditions(
    config: ToolConfig,
    energy: EnergyBackend,
    euid: Optional[int] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
) -> List[str]:
    """
    Verify privilege and required tools before any command runs.

    Returns:
        Non-fatal warnings (missing energy counter)

    Raises:
        PrivilegeError: Not running as root
        DependencyMissingError: A required tool is not on PATH
    """
    if euid is None:
        euid = os.geteuid()
    if euid != 0:
        raise PrivilegeError("Please run as root (sudo).")

    for tool in config.required_tools:
        if which(tool) is None:
            raise DependencyMissingError(tool)

    warnings = []
    if not energy.available:
        warnings.append(
            "RAPL energy interface not found; power readings will be 0 W."
        )
    return warnings


@dataclass
class Components:
    """Wired-up core objects for one invocation."""
    config: ToolConfig
    backend: CoreStateBackend
    energy: EnergyBackend
    clock: Clock
    tracker: ActiveSetTracker
    meter: PowerMeter
    controller: CoreStateController
    policy: ResolvedPolicy


def build_components(
    config: ToolConfig,
    backend: Optional[CoreStateBackend] = None,
    energy: Optional[EnergyBackend] = None,
    clock: Optional[Clock] = None,
    records=None,
) -> Components:
    """Build backends, tracker, meter, and controller from config.

    Any of the backends may be injected; the defaults talk to sysfs.

    Raises:
        ValueError: If the policy mode cannot be satisfied
    """
    paths = config.paths
    backend = backend or SysfsCoreStateBackend(Path(paths.cpu_root))
    energy = energy or RaplEnergyBackend(Path(paths.rapl_zone), config.energy.counter_bits)
    clock = clock or SystemClock()
    if records is None:
        if config.policy.mode == "static":
            records = []
        else:
            records = discover_topology(backend, Path(paths.cpu_root), Path(paths.pmu_root))

    policy = resolve_policy_ids(config.policy.mode, records, config.policy.static_ids)
    return Components(
        config=config,
        backend=backend,
        energy=energy,
        clock=clock,
        tracker=ActiveSetTracker(backend),
        meter=PowerMeter(energy, clock),
        controller=CoreStateController(backend, policy.ids),
        policy=policy,
    )


def _print_summary(text: str, use_color: bool) -> None:
    """Print text with optional ANSI colorization."""
    print(fmt.colorize(text) if use_color else text)


def _warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr)


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2))


# --- Report formatting ---

def format_control_report(report: ControlReport) -> str:
    """Per-processor table of what a control operation did."""
    rows = []
    for cpu_id, state in sorted(report.changed.items()):
        rows.append((cpu_id, "Online" if state else "Offline", "changed"))
    for cpu_id in sorted(report.unchanged):
        rows.append((cpu_id, "-", "unchanged"))
    for cpu_id in sorted(report.protected):
        rows.append((cpu_id, "-", "protected"))
    for cpu_id, reason in sorted(report.unavailable.items()):
        rows.append((cpu_id, reason, "unavailable"))
    rows.sort(key=lambda r: r[0])
    return fmt.table(("CPU", "Detail", "Result"), rows, aligns=('r', 'l', 'l'))


def format_benchmark_result(result: BenchmarkResult) -> str:
    """Human-readable benchmark summary."""
    lines = [fmt.heading("Results")]
    lines.append(fmt.kv_block([
        ("Transition", f"[{result.baseline_active}] -> [{result.reduced_active}]"),
        ("Baseline power", fmt.format_watts(result.baseline.watts)),
        ("Powersave power", fmt.format_watts(result.reduced.watts)),
        ("Deactivated", ",".join(str(i) for i in result.policy_ids) or "none"),
    ]))
    lines.append("")
    lines.append(fmt.badge("Power saved", fmt.format_watts(result.delta_watts)))
    lines.append(fmt.badge("Efficiency gain", fmt.format_percent(result.percent)))
    if result.warnings:
        lines.append("")
        lines.append(fmt.note_block(result.warnings))
    lines.append(fmt.separator())
    return "\n".join(lines)


def format_monitor_row(row: MonitorRow) -> str:
    return fmt.stream_row(
        (row.timestamp.strftime("%H:%M:%S"), row.label, f"{row.watts:.2f} W"),
        MONITOR_WIDTHS,
        aligns=('l', 'l', 'r'),
    )


# --- Commands ---

def cmd_status(c: Components, args: argparse.Namespace, use_color: bool) -> int:
    try:
        report = topology_report()
    except (OSError, subprocess.CalledProcessError) as e:
        _warn(f"Topology report unavailable: {e}")
        report = ""

    active = c.tracker.current_active_set()
    measurement = c.meter.measure_average_power(c.config.timing.sample_window_s)

    if args.json:
        _print_json({
            "topology": report,
            "active": str(active),
            "policy": {"source": c.policy.source, "ids": list(c.policy.ids)},
            "measurement": measurement.to_dict(),
        })
        return EXIT_OK

    lines = [fmt.title("CPU Topology (Hybrid)")]
    if report:
        lines.append(report)
    lines.append(fmt.separator())
    lines.append(fmt.kv_block([
        ("Active Processor IDs", str(active)),
        ("Current Power Draw", fmt.format_watts(measurement.watts)),
        ("Powersave policy", f"{list(c.policy.ids)} ({c.policy.source})"),
    ]))
    _print_summary("\n".join(lines), use_color)
    return EXIT_OK


def _run_control(
    c: Components,
    args: argparse.Namespace,
    use_color: bool,
    action: str,
    report: ControlReport,
) -> int:
    for message in report.warnings():
        _warn(message)
    active = c.tracker.current_active_set()

    if args.json:
        _print_json({"action": action, "active": str(active), "report": report.to_dict()})
        return EXIT_OK

    lines = []
    if args.verbose:
        lines.append(format_control_report(report))
    lines.append(f"{action}. Active IDs: {active}")
    _print_summary("\n".join(lines), use_color)
    return EXIT_OK


def cmd_powersave(c: Components, args: argparse.Namespace, use_color: bool) -> int:
    report = c.controller.apply_power_save_policy()
    return _run_control(c, args, use_color, "Powersave applied", report)


def cmd_restore(c: Components, args: argparse.Namespace, use_color: bool) -> int:
    report = c.controller.restore_all(c.tracker.total_count())
    return _run_control(c, args, use_color, "Restored", report)


def cmd_monitor(c: Components, args: argparse.Namespace, use_color: bool) -> int:
    loop = MonitorLoop(c.tracker, c.meter, window_s=c.config.timing.sample_window_s, clock=c.clock)
    rows: List[MonitorRow] = []

    _print_summary("\n".join([
        fmt.title("Real-Time Power Monitor"),
        fmt.info_line("Tracking package power vs. active processor IDs"),
        fmt.info_line("* marks samples where the active set changed mid-window"),
        fmt.info_line("Ctrl+C to exit."),
        "",
        fmt.stream_header(MONITOR_HEADERS, MONITOR_WIDTHS),
    ]), use_color)

    exit_code = EXIT_OK
    try:
        for row in loop.rows(limit=args.count):
            rows.append(row)
            _print_summary(format_monitor_row(row), use_color)
            sys.stdout.flush()
    except KeyboardInterrupt:
        exit_code = EXIT_INTERRUPTED

    summary = summarize(rows)
    print()
    _print_summary(fmt.kv_block([
        ("Samples", str(summary.samples)),
        ("Transitional", str(summary.transitional)),
        ("Mean power", fmt.format_watts(summary.mean_watts)),
        ("Min / max", f"{fmt.format_watts(summary.min_watts)} / {fmt.format_watts(summary.max_watts)}"),
    ]), use_color)
    return exit_code


def cmd_benchmark(c: Components, args: argparse.Namespace, use_color: bool) -> int:
    def progress(state: BenchmarkState, details: dict) -> None:
        if args.json:
            return
        if state == BenchmarkState.MEASURING_BASELINE:
            _print_summary(f"1. Measuring BASELINE...\n   Active IDs: [{details['active']}]", use_color)
        elif state == BenchmarkState.APPLYING_POLICY:
            _print_summary(f"   Avg Power:  {fmt.format_watts(details['baseline'].watts)}\n", use_color)
        elif state == BenchmarkState.MEASURING_REDUCED:
            _print_summary(f"2. Measuring POWERSAVE...\n   Active IDs: [{details['active']}]", use_color)
        elif state == BenchmarkState.DONE:
            _print_summary(f"   Avg Power:  {fmt.format_watts(details['result'].reduced.watts)}", use_color)

    if not args.json:
        _print_summary("\n".join([
            fmt.title("Power Conservation Efficiency Benchmark"),
            fmt.info_line("Compares package power at full capacity and under the powersave policy."),
            "",
        ]), use_color)

    orchestrator = BenchmarkOrchestrator(
        c.controller,
        c.tracker,
        c.meter,
        clock=c.clock,
        window_s=c.config.timing.benchmark_window_s,
        settle_s=c.config.timing.settle_s,
        progress=progress,
    )
    result = orchestrator.run()

    if args.json:
        _print_json(result.to_dict())
    else:
        _print_summary(format_benchmark_result(result), use_color)
    return EXIT_OK


COMMAND_HANDLERS = {
    "status": cmd_status,
    "powersave": cmd_powersave,
    "restore": cmd_restore,
    "monitor": cmd_monitor,
    "benchmark": cmd_benchmark,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hybrid-core-power",
        description="Toggle hybrid CPU logical processors and measure package power",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  status     topology, active processor IDs, and current power draw
  powersave  deactivate P-core siblings and half of the E-cores
  restore    reactivate every processor except CPU 0
  monitor    print power vs. active processor IDs until Ctrl+C
  benchmark  compare full-capacity and powersave power draw
        """,
    )
    parser.add_argument("command", nargs="?", help="One of: " + ", ".join(COMMANDS))
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Show per-processor results for powersave/restore")
    parser.add_argument("--count", type=int, default=None,
                        help="monitor: stop after this many samples")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    return parser


def main(argv: Optional[List[str]] = None, components: Optional[Components] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Arguments (defaults to sys.argv[1:])
        components: Pre-built components; skips config loading and the
            privilege/dependency checks

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        print(USAGE, file=sys.stderr)
        return EXIT_FAILURE

    if components is None:
        config = ToolConfig()
        if args.config is not None:
            try:
                config = load_config(args.config)
            except FileNotFoundError:
                print(f"Error: Config file not found: {args.config}", file=sys.stderr)
                return EXIT_FAILURE
            except ValueError as e:
                # json.JSONDecodeError and json5 errors are both ValueErrors
                print(f"Error: Invalid JSON in {args.config}: {e}", file=sys.stderr)
                return EXIT_FAILURE

        errors = validate_config(config)
        if errors:
            print("Error: Invalid config:", file=sys.stderr)
            for err in errors:
                print(f"  - {err}", file=sys.stderr)
            return EXIT_FAILURE

        energy = RaplEnergyBackend(Path(config.paths.rapl_zone), config.energy.counter_bits)
        try:
            warnings = check_preconditions(config, energy)
        except PrivilegeError as e:
            print(str(e), file=sys.stderr)
            return EXIT_FAILURE
        except DependencyMissingError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_FAILURE
        for message in warnings:
            _warn(message)

        try:
            components = build_components(config, energy=energy)
        except (ValueError, InterfaceUnavailableError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_FAILURE

    if components.policy.warning:
        _warn(components.policy.warning)

    use_color = fmt.supports_color() and not args.no_color
    return COMMAND_HANDLERS[args.command](components, args, use_color)


if __name__ == "__main__":
    sys.exit(main())
