"""Counter snapshot readers for the Linux /proc filesystem.

Reads /proc/stat (aggregate CPU ticks) and /proc/meminfo (memory totals)
in a single bounded read each and parses them into immutable snapshots.
"""

from dataclasses import dataclass
from pathlib import Path

import structlog

log = structlog.get_logger()

BUFFER_SIZE = 4096  # Max bytes read from a counter source (minus one)
CPU_FIELD_COUNT = 8


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────


class SysMonitorError(Exception):
    """Base class for sysmonitor errors."""


class SourceUnavailable(SysMonitorError):
    """A counter source could not be opened or read."""

    def __init__(self, path: Path, reason: OSError | str) -> None:
        self.path = path
        self.reason = reason
        detail = reason.strerror if isinstance(reason, OSError) and reason.strerror else reason
        super().__init__(f"Could not read {path}: {detail}")


class ParseShortfall(SysMonitorError):
    """A record held fewer fields than expected."""

    def __init__(self, what: str, expected: int, found: int) -> None:
        self.what = what
        self.expected = expected
        self.found = found
        super().__init__(f"{what}: expected {expected} fields, found {found}")


class InvalidUserInput(SysMonitorError):
    """Non-numeric or out-of-range user input."""


class LoggingFailure(SysMonitorError):
    """The activity log could not be opened or written."""


# ─────────────────────────────────────────────────────────────────────────────
# Snapshots
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CPUCounterSnapshot:
    """Aggregate CPU tick counters since boot, captured at one instant."""

    user: int = 0
    nice: int = 0
    system: int = 0
    idle: int = 0
    iowait: int = 0
    irq: int = 0
    softirq: int = 0
    steal: int = 0

    @property
    def total(self) -> int:
        """Total ticks since boot."""
        return (
            self.user
            + self.nice
            + self.system
            + self.idle
            + self.iowait
            + self.irq
            + self.softirq
            + self.steal
        )

    @property
    def idle_total(self) -> int:
        """Ticks spent idle, including I/O wait."""
        return self.idle + self.iowait


@dataclass(frozen=True)
class MemorySnapshot:
    """Memory totals in kilobytes. total_kb == 0 means MemTotal was missing."""

    total_kb: int = 0
    available_kb: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# Reading
# ─────────────────────────────────────────────────────────────────────────────


def read_bounded(path: Path, limit: int = BUFFER_SIZE) -> str:
    """Read at most limit - 1 bytes from path in one call.

    Content past the limit is dropped. Raises SourceUnavailable on open or
    read failure, and on an empty read.
    """
    try:
        with open(path, "rb") as f:
            data = f.read(limit - 1)
    except OSError as e:
        raise SourceUnavailable(path, e) from e
    if not data:
        raise SourceUnavailable(path, "empty read")
    return data.decode("utf-8", errors="replace")


def _leading_uint(token: str) -> int | None:
    """Parse an unsigned decimal token, None if it is not one."""
    if token.isascii() and token.isdigit():
        return int(token)
    return None


def parse_cpu_counters(text: str, *, lenient: bool = True) -> CPUCounterSnapshot:
    """Parse the aggregate "cpu" line of /proc/stat.

    Integers are consumed in field order until eight are read or a token
    fails to parse. In lenient mode missing fields are zero; otherwise a
    shortfall raises ParseShortfall.
    """
    values: list[int] = []
    for line in text.splitlines():
        tokens = line.split()
        if not tokens or tokens[0] != "cpu":
            continue
        for token in tokens[1 : CPU_FIELD_COUNT + 1]:
            value = _leading_uint(token)
            if value is None:
                break
            values.append(value)
        break

    if len(values) < CPU_FIELD_COUNT:
        if not lenient:
            raise ParseShortfall("cpu counters", CPU_FIELD_COUNT, len(values))
        log.debug("cpu_counters_short", found=len(values), expected=CPU_FIELD_COUNT)
        values.extend([0] * (CPU_FIELD_COUNT - len(values)))

    return CPUCounterSnapshot(*values)


def parse_memory_counters(text: str) -> MemorySnapshot:
    """Parse MemTotal and MemAvailable (kB) from /proc/meminfo text.

    Unrelated lines are ignored. A missing or unparsable key stays zero.
    """
    total_kb = 0
    available_kb = 0
    for line in text.splitlines():
        if line.startswith("MemTotal:"):
            total_kb = _meminfo_value(line, "MemTotal:")
        elif line.startswith("MemAvailable:"):
            available_kb = _meminfo_value(line, "MemAvailable:")
    return MemorySnapshot(total_kb=total_kb, available_kb=available_kb)


def _meminfo_value(line: str, key: str) -> int:
    tokens = line[len(key) :].split()
    if not tokens:
        return 0
    value = _leading_uint(tokens[0])
    return value if value is not None else 0


def read_cpu_counters(
    proc_root: Path = Path("/proc"), *, lenient: bool = True
) -> CPUCounterSnapshot:
    """Read and parse the aggregate CPU counters from <proc_root>/stat."""
    return parse_cpu_counters(read_bounded(proc_root / "stat"), lenient=lenient)


def read_memory_counters(proc_root: Path = Path("/proc")) -> MemorySnapshot:
    """Read and parse memory totals from <proc_root>/meminfo."""
    return parse_memory_counters(read_bounded(proc_root / "meminfo"))
