"""
Tests for the host metrics sampler.

Uses fake /proc files; psutil and df are patched where a test needs
a specific fallback outcome.
"""

import subprocess

import pytest

from orbitdash.services.metrics import sampler as sampler_module
from orbitdash.services.metrics.sampler import (
    CpuTimes,
    Sampler,
    parse_df_output,
    parse_meminfo,
    parse_proc_stat,
    run_chain,
    to_percent,
)

DF_OUTPUT = (
    "Filesystem      1-blocks   Used Available Capacity Mounted on\n"
    "/dev/sda1           1000    250       750      25% /\n"
)


@pytest.fixture
def sampler(proc_root, clock, monkeypatch):
    monkeypatch.setattr(Sampler, "_read_df", lambda self: 42.0)
    return Sampler(proc_root=proc_root, clock=clock)


def write_stat(proc_root, user, system, idle, iowait=0):
    (proc_root / "stat").write_text(f"cpu  {user} 0 {system} {idle} {iowait} 0 0 0 0 0\n")


# =============================================================================
# Parsers
# =============================================================================


class TestParsers:
    def test_parse_proc_stat_counts_iowait_as_idle(self):
        times = parse_proc_stat("cpu  10 1 5 80 4 0 0 0 0 0")
        assert times == CpuTimes(idle=84, total=100)

    def test_parse_proc_stat_rejects_per_core_line(self):
        with pytest.raises(ValueError):
            parse_proc_stat("cpu0 10 1 5 80 4")

    def test_parse_meminfo_uses_available(self):
        text = "MemTotal: 1000 kB\nMemFree: 100 kB\nMemAvailable: 400 kB\n"
        assert parse_meminfo(text) == 60.0

    def test_parse_meminfo_requires_available(self):
        with pytest.raises(ValueError):
            parse_meminfo("MemTotal: 1000 kB\nMemFree: 100 kB\n")

    def test_parse_df_output(self):
        assert parse_df_output(DF_OUTPUT) == 25.0

    def test_parse_df_output_zero_total(self):
        assert parse_df_output("fs 0 0 0 0% /\n") == 0.0

    def test_to_percent_clamps_and_rounds(self):
        assert to_percent(1.5) == 100.0
        assert to_percent(-0.2) == 0.0
        assert to_percent(0.123456) == 12.35


class TestRunChain:
    def test_first_success_wins(self):
        def broken():
            raise OSError("nope")

        result = run_chain([("a", broken), ("b", lambda: 7), ("c", lambda: 9)])
        assert result.ok
        assert (result.source, result.value) == ("b", 7)

    def test_all_failures_collected(self):
        def broken():
            raise ValueError("bad")

        result = run_chain([("a", broken), ("b", broken)])
        assert not result.ok
        assert "a: bad" in result.error and "b: bad" in result.error


# =============================================================================
# CPU
# =============================================================================


class TestCpu:
    def test_first_call_without_baseline_is_zero(self, sampler):
        assert sampler.cpu_percent() == 0.0

    def test_delta_between_calls(self, sampler, proc_root):
        write_stat(proc_root, user=100, system=100, idle=800)
        sampler.cpu_percent()
        write_stat(proc_root, user=150, system=150, idle=900)
        # total delta 200, idle delta 100
        assert sampler.cpu_percent() == 50.0

    def test_no_tick_change_is_zero(self, sampler):
        sampler.cpu_percent()
        assert sampler.cpu_percent() == 0.0

    def test_counter_anomaly_is_clamped(self, sampler, proc_root):
        write_stat(proc_root, user=100, system=100, idle=800)
        sampler.cpu_percent()
        # idle grew more than total
        write_stat(proc_root, user=90, system=90, idle=900)
        value = sampler.cpu_percent()
        assert 0.0 <= value <= 100.0

    def test_falls_back_to_psutil(self, sampler, proc_root, monkeypatch):
        (proc_root / "stat").unlink()
        readings = iter([CpuTimes(idle=50, total=100), CpuTimes(idle=60, total=200)])
        monkeypatch.setattr(sampler_module, "read_psutil_cpu_times", lambda: next(readings))

        assert sampler.cpu_percent() == 0.0
        assert sampler.cpu_percent() == 90.0
        assert sampler.sources["cpu"] == "psutil"

    def test_source_switch_resets_baseline(self, sampler, proc_root, monkeypatch):
        sampler.cpu_percent()
        (proc_root / "stat").unlink()
        monkeypatch.setattr(
            sampler_module, "read_psutil_cpu_times", lambda: CpuTimes(idle=1, total=10**9)
        )
        assert sampler.cpu_percent() == 0.0

    def test_all_sources_failing_is_zero(self, sampler, proc_root, monkeypatch):
        (proc_root / "stat").unlink()

        def broken():
            raise RuntimeError("no psutil data")

        monkeypatch.setattr(sampler_module, "read_psutil_cpu_times", broken)
        assert sampler.cpu_percent() == 0.0
        assert sampler.sources["cpu"] == "none"


# =============================================================================
# RAM / Disk
# =============================================================================


class TestRam:
    def test_meminfo_preferred(self, sampler):
        assert sampler.ram_percent() == 60.0
        assert sampler.sources["ram"] == "meminfo"

    def test_falls_back_to_psutil(self, sampler, proc_root, monkeypatch):
        (proc_root / "meminfo").unlink()
        monkeypatch.setattr(sampler_module, "read_psutil_memory", lambda: 87.5)
        assert sampler.ram_percent() == 87.5
        assert sampler.sources["ram"] == "psutil"


class TestDisk:
    def test_df_failure_is_zero(self, proc_root, monkeypatch):
        def missing_df(*args, **kwargs):
            raise FileNotFoundError("df")

        monkeypatch.setattr(subprocess, "run", missing_df)
        assert Sampler(proc_root=proc_root).disk_percent() == 0.0

    def test_df_output_parsed(self, proc_root, monkeypatch):
        def fake_df(cmd, **kwargs):
            assert cmd[-1] == "/mnt/data"
            return subprocess.CompletedProcess(cmd, 0, stdout=DF_OUTPUT, stderr="")

        monkeypatch.setattr(subprocess, "run", fake_df)
        assert Sampler(proc_root=proc_root, disk_path="/mnt/data").disk_percent() == 25.0


# =============================================================================
# Sample
# =============================================================================


class TestSample:
    def test_sample_combines_measurements(self, sampler, clock):
        sample = sampler.sample()
        assert sample.timestamp == clock.now
        assert sample.cpu == 0.0
        assert sample.ram == 60.0
        assert sample.disk == 42.0

    def test_one_failing_metric_does_not_block_others(self, sampler, proc_root, monkeypatch):
        (proc_root / "meminfo").unlink()

        def broken():
            raise RuntimeError("boom")

        monkeypatch.setattr(sampler_module, "read_psutil_memory", broken)
        sample = sampler.sample()
        assert sample.ram == 0.0
        assert sample.disk == 42.0

    def test_timestamps_never_go_backwards(self, sampler, clock):
        first = sampler.sample()
        clock.advance(-5_000)
        second = sampler.sample()
        assert second.timestamp >= first.timestamp
