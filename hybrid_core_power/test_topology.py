"""
Unit tests for cpulist parsing, ActiveSet, tracking, and topology records.

Run with: pytest test_topology.py -v
"""

import shutil

import pytest

from .backends import InMemoryCoreStateBackend, SysfsCoreStateBackend
from .policy import derive_power_save_ids
from .topology import (
    ActiveSet, ActiveSetTracker, CoreType,
    parse_cpulist, format_cpulist, read_topology, discover_topology,
    group_by_physical_core,
    topology_report,
)


class TestCpulist:
    """Tests for cpulist notation."""

    def test_parse_ranges(self):
        assert parse_cpulist("0-3,8-11") == [0, 1, 2, 3, 8, 9, 10, 11]

    def test_parse_mixed(self):
        assert parse_cpulist("0,2,4-7") == [0, 2, 4, 5, 6, 7]

    def test_parse_single(self):
        assert parse_cpulist("0") == [0]

    def test_parse_trailing_newline(self):
        assert parse_cpulist("0-1\n") == [0, 1]

    def test_parse_empty(self):
        assert parse_cpulist("") == []

    def test_parse_descending_range_rejected(self):
        with pytest.raises(ValueError):
            parse_cpulist("5-3")

    def test_parse_garbage_rejected(self):
        with pytest.raises(ValueError):
            parse_cpulist("0,,2")
        with pytest.raises(ValueError):
            parse_cpulist("a-b")

    def test_format_compresses_runs(self):
        assert format_cpulist([0, 2, 4, 5, 6, 7]) == "0,2,4-7"

    def test_format_unordered_and_duplicates(self):
        assert format_cpulist([11, 8, 9, 10, 3, 2, 1, 0, 3]) == "0-3,8-11"

    def test_format_empty(self):
        assert format_cpulist([]) == ""


class TestActiveSet:
    """Tests for ActiveSet value semantics."""

    def test_equality_is_set_equality(self):
        assert ActiveSet.from_cpulist("0-3") == ActiveSet.of([3, 2, 1, 0])
        assert ActiveSet.from_cpulist("0,2") != ActiveSet.from_cpulist("0-2")

    def test_str_is_canonical(self):
        assert str(ActiveSet.from_cpulist("0,1,2,3,8-9,10,11")) == "0-3,8-11"

    def test_iteration_is_ordered(self):
        assert list(ActiveSet.of([5, 0, 2])) == [0, 2, 5]

    def test_rejects_id_beyond_total(self):
        with pytest.raises(ValueError):
            ActiveSet.from_cpulist("0-12", total=12)

    def test_rejects_negative_id(self):
        with pytest.raises(ValueError):
            ActiveSet.of([-1, 0])

    def test_contains_and_len(self):
        s = ActiveSet.from_cpulist("0,2,4-7")
        assert 5 in s
        assert 1 not in s
        assert len(s) == 6


class TestActiveSetTracker:
    """Tests for reading the active set from a backend."""

    def test_in_memory_full_set(self):
        tracker = ActiveSetTracker(InMemoryCoreStateBackend(12))
        assert tracker.total_count() == 12
        assert tracker.current_active_set() == ActiveSet.of(range(12))

    def test_in_memory_with_inactive(self):
        backend = InMemoryCoreStateBackend(12, inactive=[1, 3, 8, 9, 10, 11])
        tracker = ActiveSetTracker(backend)
        assert str(tracker.current_active_set()) == "0,2,4-7"

    def test_equal(self):
        a = ActiveSet.from_cpulist("0-3")
        b = ActiveSet.from_cpulist("0,1,2,3")
        assert ActiveSetTracker.equal(a, b)
        assert not ActiveSetTracker.equal(a, ActiveSet.from_cpulist("0-2"))

    def test_sysfs_reads_online_file(self, tmp_path):
        (tmp_path / "online").write_text("0-3,8-11\n")
        (tmp_path / "possible").write_text("0-11\n")
        tracker = ActiveSetTracker(SysfsCoreStateBackend(tmp_path))
        assert str(tracker.current_active_set()) == "0-3,8-11"

    def test_sysfs_missing_online_falls_back_to_all(self, tmp_path):
        (tmp_path / "possible").write_text("0-7\n")
        tracker = ActiveSetTracker(SysfsCoreStateBackend(tmp_path))
        assert tracker.current_active_set() == ActiveSet.of(range(8))


def _make_cpu(root, cpu_id, core_id, siblings, package_id=0):
    topo = root / "cpu" / f"cpu{cpu_id}" / "topology"
    topo.mkdir(parents=True)
    (topo / "core_id").write_text(f"{core_id}\n")
    (topo / "physical_package_id").write_text(f"{package_id}\n")
    (topo / "thread_siblings_list").write_text(f"{siblings}\n")


class HotplugSysfsBackend(SysfsCoreStateBackend):
    """
    Sysfs backend over a fake tree that follows kernel hotplug behavior.

    Deactivating a processor removes its ``topology`` directory, drops it from
    its siblings' lists and from the PMU and ``online`` lists.
    """

    def __init__(self, root, layout):
        super().__init__(root / "cpu")
        self.root = root
        self.layout = layout
        self.writes = []

    def set_active(self, cpu_id, active):
        super().set_active(cpu_id, active)
        self.writes.append((cpu_id, active))
        self.sync()

    def sync(self):
        online = [cpu_id for cpu_id in self.layout if self.is_active(cpu_id)]
        for cpu_id, (core_type, core_id, siblings) in self.layout.items():
            topo = self.cpu_root / f"cpu{cpu_id}" / "topology"
            if cpu_id not in online:
                if topo.exists():
                    shutil.rmtree(topo)
                continue
            topo.mkdir(exist_ok=True)
            (topo / "core_id").write_text(f"{core_id}\n")
            (topo / "physical_package_id").write_text("0\n")
            visible = [s for s in siblings if s in online]
            (topo / "thread_siblings_list").write_text(format_cpulist(visible) + "\n")
        for pmu, core_type in (("cpu_core", CoreType.PERFORMANCE), ("cpu_atom", CoreType.EFFICIENCY)):
            ids = [i for i in online if self.layout[i][0] == core_type]
            (self.root / pmu / "cpus").write_text(format_cpulist(ids) + "\n")
        (self.cpu_root / "online").write_text(format_cpulist(online) + "\n")


def make_hotplug_tree(root, offline=()):
    """Alder Lake-U15 tree (P-cores 0-3 with SMT, E-cores 4-11) with some processors offline."""
    layout = {}
    for cpu_id in range(4):
        first = cpu_id - cpu_id % 2
        layout[cpu_id] = (CoreType.PERFORMANCE, (cpu_id // 2) * 4, (first, first + 1))
    for cpu_id in range(4, 12):
        layout[cpu_id] = (CoreType.EFFICIENCY, cpu_id + 4, (cpu_id,))

    cpu_root = root / "cpu"
    for cpu_id in layout:
        d = cpu_root / f"cpu{cpu_id}"
        d.mkdir(parents=True)
        if cpu_id:
            (d / "online").write_text("0\n" if cpu_id in offline else "1\n")
    (cpu_root / "possible").write_text("0-11\n")
    (root / "cpu_core").mkdir()
    (root / "cpu_atom").mkdir()

    backend = HotplugSysfsBackend(root, layout)
    backend.sync()
    return backend


class TestReadTopology:
    """Tests for sysfs topology records."""

    @pytest.fixture
    def hybrid_tree(self, tmp_path):
        """Alder Lake-U15 style tree: P-cores 0-3 (SMT), E-cores 4-11."""
        for cpu_id in range(4):
            _make_cpu(tmp_path, cpu_id, core_id=(cpu_id // 2) * 4,
                      siblings=f"{cpu_id - cpu_id % 2}-{cpu_id - cpu_id % 2 + 1}")
        for cpu_id in range(4, 12):
            _make_cpu(tmp_path, cpu_id, core_id=cpu_id + 4, siblings=str(cpu_id))
        (tmp_path / "cpu" / "cpufreq").mkdir()
        (tmp_path / "cpu_core").mkdir()
        (tmp_path / "cpu_core" / "cpus").write_text("0-3\n")
        (tmp_path / "cpu_atom").mkdir()
        (tmp_path / "cpu_atom" / "cpus").write_text("4-11\n")
        return tmp_path

    def test_reads_all_processors(self, hybrid_tree):
        records = read_topology(hybrid_tree / "cpu", hybrid_tree)
        assert [r.cpu_id for r in records] == list(range(12))

    def test_core_types(self, hybrid_tree):
        records = read_topology(hybrid_tree / "cpu", hybrid_tree)
        types = {r.cpu_id: r.core_type for r in records}
        assert types[0] == CoreType.PERFORMANCE
        assert types[3] == CoreType.PERFORMANCE
        assert types[4] == CoreType.EFFICIENCY
        assert types[11] == CoreType.EFFICIENCY

    def test_siblings(self, hybrid_tree):
        records = {r.cpu_id: r for r in read_topology(hybrid_tree / "cpu", hybrid_tree)}
        assert records[1].siblings == (0, 1)
        assert records[6].siblings == (6,)
        assert records[0].protected
        assert not records[1].protected

    def test_group_by_physical_core(self, hybrid_tree):
        records = read_topology(hybrid_tree / "cpu", hybrid_tree)
        groups = group_by_physical_core(records)
        assert groups[(0, 0)] == [0, 1]
        assert groups[(0, 4)] == [2, 3]

    def test_non_hybrid_is_unknown(self, tmp_path):
        _make_cpu(tmp_path, 0, core_id=0, siblings="0")
        records = read_topology(tmp_path / "cpu", tmp_path)
        assert records[0].core_type == CoreType.UNKNOWN


class TestDiscoverTopology:
    """Tests for topology discovery while processors are deactivated."""

    def test_read_topology_only_sees_online_processors(self, tmp_path):
        backend = make_hotplug_tree(tmp_path, offline=(1, 3, 8, 9, 10, 11))
        records = read_topology(backend.cpu_root, tmp_path)
        assert [r.cpu_id for r in records] == [0, 2, 4, 5, 6, 7]

    def test_includes_offline_processors(self, tmp_path):
        backend = make_hotplug_tree(tmp_path, offline=(1, 3, 8, 9, 10, 11))
        records = discover_topology(backend, backend.cpu_root, tmp_path)
        assert [r.cpu_id for r in records] == list(range(12))
        by_id = {r.cpu_id: r for r in records}
        assert by_id[1].siblings == (0, 1)
        assert by_id[9].core_type == CoreType.EFFICIENCY
        assert derive_power_save_ids(records) == (1, 3, 8, 9, 10, 11)

    def test_returns_processors_to_previous_state(self, tmp_path):
        backend = make_hotplug_tree(tmp_path, offline=(1, 3, 8, 9, 10, 11))
        discover_topology(backend, backend.cpu_root, tmp_path)
        assert backend.online_cpulist() == "0,2,4-7"
        assert not (backend.cpu_root / "cpu1" / "topology").exists()

    def test_all_online_needs_no_writes(self, tmp_path):
        backend = make_hotplug_tree(tmp_path)
        records = discover_topology(backend, backend.cpu_root, tmp_path)
        assert len(records) == 12
        assert backend.writes == []


class TestTopologyReport:
    """Tests for the lscpu report wrapper."""

    def test_truncates_output(self):
        report = topology_report(["printf", "a\\nb\\nc\\n"], max_lines=2)
        assert report == "a\nb"

    def test_missing_command_raises(self):
        with pytest.raises(FileNotFoundError):
            topology_report(["definitely-not-a-real-command-xyz"])
