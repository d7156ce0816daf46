"""
Host Metrics Sampler

Collects one Sample per call:
- CPU usage from the tick delta since the previous call
- Memory usage excluding reclaimable cache/buffers
- Disk usage of the configured mount point

Each measurement walks an ordered list of sources and never raises;
when every source fails the reading is 0.
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

import psutil

from ...common.logging_setup import get_service_logger
from ...common.timestamp import now_ms
from .models import Sample

logger = get_service_logger("metrics.sampler")

T = TypeVar("T")

DF_TIMEOUT_S = 5.0


@dataclass(frozen=True)
class CpuTimes:
    """Cumulative CPU counters (same unit within one source)"""
    idle: float
    total: float


@dataclass(frozen=True)
class SourceResult(Generic[T]):
    """Outcome of one measurement chain"""
    source: str
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_chain(strategies: list[tuple[str, Callable[[], T]]]) -> SourceResult[T]:
    """
    Try each (name, reader) in order and return the first success.

    Failures are collected into the result instead of raised.
    """
    failures = []
    for name, read in strategies:
        try:
            return SourceResult(source=name, value=read())
        except Exception as e:
            failures.append(f"{name}: {e}")
    return SourceResult(source="none", error="; ".join(failures) or "no sources")


def to_percent(fraction: float) -> float:
    """Convert a 0-1 fraction to a clamped percentage with 2 decimals"""
    return round(min(100.0, max(0.0, fraction * 100)), 2)


def parse_proc_stat(text: str) -> CpuTimes:
    """Parse the aggregate 'cpu' line of /proc/stat"""
    parts = text.split("\n", 1)[0].split()
    if not parts or parts[0] != "cpu":
        raise ValueError("unexpected /proc/stat format")
    values = [int(p) for p in parts[1:]]
    # idle + iowait
    idle = values[3] + (values[4] if len(values) > 4 else 0)
    return CpuTimes(idle=idle, total=sum(values))


def parse_meminfo(text: str) -> float:
    """Used memory percentage from /proc/meminfo (total - available)"""
    meminfo = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) >= 2:
            meminfo[parts[0].rstrip(":")] = int(parts[1])

    total = meminfo.get("MemTotal", 0)
    if total <= 0:
        raise ValueError("could not read MemTotal")
    if "MemAvailable" not in meminfo:
        raise ValueError("MemAvailable not reported")
    return to_percent((total - meminfo["MemAvailable"]) / total)


def parse_df_output(text: str) -> float:
    """Used percentage from `df -P -B1` output (used / (used + available))"""
    lines = text.strip().splitlines()
    if not lines:
        raise ValueError("empty df output")
    # filesystem, blocks, used, available, capacity, mountpoint
    parts = lines[-1].split()
    used = int(parts[2])
    available = int(parts[3])
    total = used + available
    if total == 0:
        return 0.0
    return to_percent(used / total)


def read_psutil_cpu_times() -> CpuTimes:
    """Sum psutil per-core counters"""
    idle = 0.0
    total = 0.0
    for times in psutil.cpu_times(percpu=True):
        fields = times._asdict()
        total += sum(fields.values())
        idle += fields.get("idle", 0.0) + fields.get("iowait", 0.0)
    return CpuTimes(idle=idle, total=total)


def read_psutil_memory() -> float:
    """Used memory percentage counting cache/buffers as used (total - free)"""
    mem = psutil.virtual_memory()
    if mem.total <= 0:
        raise ValueError("virtual_memory reported zero total")
    return to_percent((mem.total - mem.free) / mem.total)


class Sampler:
    """
    Samples host CPU, RAM and disk utilization.

    Holds the previous CPU counters so consecutive calls yield a
    utilization over the interval between them.
    """

    def __init__(
        self,
        proc_root: Path | str = "/proc",
        disk_path: str = "/",
        clock: Callable[[], int] = now_ms,
    ):
        self.proc_root = Path(proc_root)
        self.disk_path = disk_path
        self._clock = clock

        self._cpu_baseline: tuple[str, CpuTimes] | None = None
        self._last_timestamp = 0
        self._sources: dict[str, str] = {}

    def sample(self) -> Sample:
        """Collect current system metrics"""
        cpu = self.cpu_percent()
        ram = self.ram_percent()
        disk = self.disk_percent()

        timestamp = max(self._clock(), self._last_timestamp)
        self._last_timestamp = timestamp

        return Sample(timestamp=timestamp, cpu=cpu, ram=ram, disk=disk)

    # ============================================
    # CPU
    # ============================================

    def cpu_percent(self) -> float:
        """
        CPU usage since the previous call.

        Returns 0 when there is no baseline yet (first call, or the
        previous reading came from another source or failed).
        """
        result = run_chain([
            ("proc_stat", self._read_proc_stat),
            ("psutil", read_psutil_cpu_times),
        ])
        self._note_source("cpu", result)

        previous = self._cpu_baseline
        if not result.ok:
            self._cpu_baseline = None
            return 0.0

        current = result.value
        self._cpu_baseline = (result.source, current)
        if previous is None or previous[0] != result.source:
            return 0.0

        idle_delta = current.idle - previous[1].idle
        total_delta = current.total - previous[1].total
        if total_delta <= 0:
            return 0.0
        return to_percent(1 - idle_delta / total_delta)

    def _read_proc_stat(self) -> CpuTimes:
        with open(self.proc_root / "stat", "r") as f:
            return parse_proc_stat(f.readline())

    # ============================================
    # MEMORY
    # ============================================

    def ram_percent(self) -> float:
        """Used memory percentage"""
        result = run_chain([
            ("meminfo", self._read_meminfo),
            ("psutil", read_psutil_memory),
        ])
        self._note_source("ram", result)
        return result.value if result.ok else 0.0

    def _read_meminfo(self) -> float:
        with open(self.proc_root / "meminfo", "r") as f:
            return parse_meminfo(f.read())

    # ============================================
    # DISK
    # ============================================

    def disk_percent(self) -> float:
        """Used percentage of the configured mount point"""
        result = run_chain([("df", self._read_df)])
        self._note_source("disk", result)
        return result.value if result.ok else 0.0

    def _read_df(self) -> float:
        completed = subprocess.run(
            ["df", "-P", "-B1", self.disk_path],
            capture_output=True,
            text=True,
            timeout=DF_TIMEOUT_S,
            check=True,
        )
        return parse_df_output(completed.stdout)

    # ============================================
    # SOURCE TRACKING
    # ============================================

    def _note_source(self, metric: str, result: SourceResult[Any]) -> None:
        """Log when a metric changes source, not on every tick"""
        previous = self._sources.get(metric)
        if previous == result.source:
            return
        self._sources[metric] = result.source

        if not result.ok:
            logger.warning(
                f"All {metric} sources failed, reporting 0: {result.error}",
                extra={"metric": metric},
            )
        elif previous is not None:
            logger.info(
                f"{metric} source changed: {previous} -> {result.source}",
                extra={"metric": metric, "source": result.source},
            )
        else:
            logger.debug(f"{metric} source: {result.source}", extra={"metric": metric})

    @property
    def sources(self) -> dict[str, str]:
        """Source currently used for each metric"""
        return dict(self._sources)
