"""
Unit tests for energy sampling and average power computation.

Run with: pytest test_meter.py -v
"""

import pytest

from .backends import FakeClock, RaplEnergyBackend, ScriptedEnergyBackend
from .errors import InterfaceUnavailableError
from .meter import PowerMeter, average_watts, energy_delta


class TestEnergyDelta:
    """Tests for counter delta with wraparound."""

    def test_monotonic(self):
        assert energy_delta(1_000_000, 3_000_000, 2**32) == 2_000_000

    def test_wrap(self):
        m = 262_143_328_850
        start, end = m - 500, 1_500
        assert energy_delta(start, end, m) == (m - start) + end == 2_000

    def test_equal_readings(self):
        assert energy_delta(42, 42, 2**32) == 0


class TestAverageWatts:
    """Tests for the watts formula."""

    def test_formula(self):
        # 2 J over 1 s
        assert average_watts(2_000_000, 1_000_000_000) == pytest.approx(2.0)

    def test_zero_duration_uses_one_ns(self):
        assert average_watts(5, 0) == 5000.0


class TestPowerMeter:
    """Tests for PowerMeter.measure_average_power."""

    def test_two_watts(self):
        clock = FakeClock()
        meter = PowerMeter(ScriptedEnergyBackend([1_000_000, 3_000_000]), clock)
        m = meter.measure_average_power(1.0)
        assert m.duration_ns == 1_000_000_000
        assert m.energy_uj == 2_000_000
        assert round(m.watts, 2) == 2.00
        assert not m.degraded
        assert not m.wrapped

    def test_blocks_for_full_window(self):
        clock = FakeClock()
        PowerMeter(ScriptedEnergyBackend([0, 10]), clock).measure_average_power(4.0)
        assert clock.sleeps == [4.0]

    def test_wrapped_window_non_negative(self):
        m_range = 2**32
        clock = FakeClock()
        energy = ScriptedEnergyBackend([m_range - 1_000_000, 1_000_000], max_range_uj=m_range)
        m = PowerMeter(energy, clock).measure_average_power(1.0)
        assert m.wrapped
        assert m.energy_uj == 2_000_000
        assert m.watts == pytest.approx(2.0)

    def test_unavailable_counter_is_degraded_zero(self):
        clock = FakeClock()
        m = PowerMeter(ScriptedEnergyBackend([]), clock).measure_average_power(1.0)
        assert m.degraded
        assert m.watts == 0.0
        assert m.start.energy_uj == 0
        assert m.end.energy_uj == 0

    def test_zero_elapsed_window(self):
        clock = FakeClock()
        m = PowerMeter(ScriptedEnergyBackend([0, 7]), clock).measure_average_power(0)
        assert m.duration_ns == 1
        assert m.watts == 7000.0

    def test_watts_non_negative_for_monotonic_counter(self):
        values = [5, 5, 10, 10_000, 10_000]
        energy = ScriptedEnergyBackend(values)
        meter = PowerMeter(energy, FakeClock())
        for _ in range(len(values) // 2):
            assert meter.measure_average_power(0.5).watts >= 0

    def test_to_dict_rounds_watts(self):
        m = PowerMeter(ScriptedEnergyBackend([0, 1_234_567]), FakeClock()).measure_average_power(1.0)
        assert m.to_dict()["watts"] == 1.23


class TestRaplBackend:
    """Tests for the powercap energy backend against a fake zone."""

    def test_reads_counter_and_range(self, tmp_path):
        (tmp_path / "energy_uj").write_text("123456\n")
        (tmp_path / "max_energy_range_uj").write_text("262143328850\n")
        backend = RaplEnergyBackend(tmp_path)
        assert backend.available
        assert backend.read_uj() == 123456
        assert backend.max_range_uj == 262143328851

    def test_wrap_past_counter_maximum(self, tmp_path):
        (tmp_path / "max_energy_range_uj").write_text("262143328850\n")
        (tmp_path / "energy_uj").write_text("262143328840\n")
        backend = RaplEnergyBackend(tmp_path)

        class WrappingClock(FakeClock):
            def sleep(self, seconds):
                super().sleep(seconds)
                (tmp_path / "energy_uj").write_text("9\n")

        m = PowerMeter(backend, WrappingClock()).measure_average_power(1.0)
        assert m.wrapped
        assert m.energy_uj == 20

    def test_default_range_from_counter_bits(self, tmp_path):
        (tmp_path / "energy_uj").write_text("1\n")
        assert RaplEnergyBackend(tmp_path).max_range_uj == 2**32
        assert RaplEnergyBackend(tmp_path, counter_bits=40).max_range_uj == 2**40

    def test_missing_zone(self, tmp_path):
        backend = RaplEnergyBackend(tmp_path / "intel-rapl:0")
        assert not backend.available
        with pytest.raises(InterfaceUnavailableError):
            backend.read_uj()

    def test_meter_over_missing_zone(self, tmp_path):
        meter = PowerMeter(RaplEnergyBackend(tmp_path / "missing"), FakeClock())
        m = meter.measure_average_power(1.0)
        assert m.degraded
        assert m.watts == 0.0

    def test_meter_over_file_backend(self, tmp_path):
        (tmp_path / "energy_uj").write_text("1000000\n")
        backend = RaplEnergyBackend(tmp_path)

        class AdvancingClock(FakeClock):
            def sleep(self, seconds):
                super().sleep(seconds)
                (tmp_path / "energy_uj").write_text("3000000\n")

        m = PowerMeter(backend, AdvancingClock()).measure_average_power(1.0)
        assert m.watts == pytest.approx(2.0)
