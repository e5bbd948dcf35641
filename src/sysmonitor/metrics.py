"""CPU and memory usage derivation from counter snapshots."""

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from sysmonitor.procfs import CPUCounterSnapshot, MemorySnapshot, read_cpu_counters


@dataclass(frozen=True)
class MemoryUsage:
    """Derived memory usage. Sizes in kilobytes."""

    total_kb: int
    available_kb: int
    used_kb: int  # Negative when the reading is degraded
    used_percent: float

    @property
    def degraded(self) -> bool:
        """True when available exceeded total (inconsistent reading)."""
        return self.available_kb > self.total_kb


def cpu_utilization(prev: CPUCounterSnapshot, curr: CPUCounterSnapshot) -> float:
    """Return busy percentage between two snapshots.

    Zero when total ticks did not advance. Inconsistent counters (e.g. a
    wrap) can produce a value outside [0, 100]; it is returned as-is.
    """
    total_delta = curr.total - prev.total
    idle_delta = curr.idle_total - prev.idle_total
    if total_delta <= 0:
        return 0.0
    return (total_delta - idle_delta) / total_delta * 100.0


def memory_usage(snap: MemorySnapshot) -> MemoryUsage | None:
    """Derive used memory from a snapshot, None if MemTotal was unavailable."""
    if snap.total_kb == 0:
        return None
    used_kb = snap.total_kb - snap.available_kb
    return MemoryUsage(
        total_kb=snap.total_kb,
        available_kb=snap.available_kb,
        used_kb=used_kb,
        used_percent=used_kb / snap.total_kb * 100.0,
    )


def sample_cpu_utilization(
    proc_root: Path,
    *,
    interval: float,
    wait: Callable[[float], object],
    lenient: bool = True,
) -> float:
    """Take two CPU snapshots interval seconds apart and derive utilization.

    Args:
        proc_root: Root of the proc filesystem
        interval: Seconds between snapshots
        wait: Sleep function; may return early on cancellation
        lenient: Zero-fill short counter lines instead of raising

    Raises:
        SourceUnavailable: If /proc/stat cannot be read.
    """
    prev = read_cpu_counters(proc_root, lenient=lenient)
    wait(interval)
    curr = read_cpu_counters(proc_root, lenient=lenient)
    return cpu_utilization(prev, curr)
