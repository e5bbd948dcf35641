"""Process enumeration from /proc/<pid>/stat and ranking by CPU ticks."""

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from sysmonitor.procfs import ParseShortfall, SourceUnavailable, SysMonitorError, read_bounded

log = structlog.get_logger()

STAT_BUFFER_SIZE = 512  # Max bytes read from one stat record (minus one)
DEFAULT_MAX_PROCESSES = 1024
DEFAULT_NAME_MAX_LENGTH = 255

# Offsets into the fields after the closing ')' (state is index 0)
UTIME_INDEX = 11
STIME_INDEX = 12


class RecordParseError(ParseShortfall):
    """A stat record had no parenthesized name field."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self.what = f"stat record for pid {pid}"
        self.expected = self.found = None
        SysMonitorError.__init__(self, f"{self.what} has no parenthesized name")


@dataclass(frozen=True)
class ProcessRecord:
    """One live process at enumeration time.

    cpu_ticks is accumulated user + system time since process start, not a rate.
    """

    pid: int
    name: str
    cpu_ticks: int


def parse_stat_record(
    pid: int,
    text: str,
    *,
    name_max_length: int = DEFAULT_NAME_MAX_LENGTH,
    lenient: bool = True,
) -> ProcessRecord:
    """Parse the contents of /proc/<pid>/stat.

    The name runs from the first '(' to the last ')', so names holding ')'
    or spaces survive. After the name, fields are read as integers in order
    and parsing stops at the first non-integer. Missing tick fields are zero
    in lenient mode.

    Raises:
        RecordParseError: If the name field is missing.
        ParseShortfall: If tick fields are missing and lenient is False.
    """
    close = text.rfind(")")
    open_ = text.find("(")
    if close == -1 or open_ == -1 or open_ > close:
        raise RecordParseError(pid)

    name = text[open_ + 1 : close][:name_max_length]
    tail = text[close + 1 :].split()

    # tail[0] is the one-character state; the rest are numeric
    numbers: list[int] = []
    for token in tail[1 : STIME_INDEX + 1]:
        try:
            numbers.append(int(token))
        except ValueError:
            break

    found = len(numbers) + (1 if tail else 0)
    if found <= STIME_INDEX and not lenient:
        raise ParseShortfall(f"stat record for pid {pid}", STIME_INDEX + 1, found)

    utime = numbers[UTIME_INDEX - 1] if len(numbers) >= UTIME_INDEX else 0
    stime = numbers[STIME_INDEX - 1] if len(numbers) >= STIME_INDEX else 0
    return ProcessRecord(pid=pid, name=name, cpu_ticks=utime + stime)


def enumerate_processes(
    proc_root: Path = Path("/proc"),
    *,
    max_processes: int = DEFAULT_MAX_PROCESSES,
    name_max_length: int = DEFAULT_NAME_MAX_LENGTH,
    lenient: bool = True,
) -> list[ProcessRecord]:
    """Collect a ProcessRecord for each numeric entry under proc_root.

    Processes that exit mid-pass or have malformed records are skipped.
    Collection stops at max_processes; later entries are dropped.

    Raises:
        SourceUnavailable: If proc_root itself cannot be listed.
    """
    records: list[ProcessRecord] = []
    try:
        with os.scandir(proc_root) as entries:
            for entry in entries:
                if not (entry.name.isascii() and entry.name.isdigit()):
                    continue
                if len(records) >= max_processes:
                    log.debug("process_cap_reached", max_processes=max_processes)
                    break

                pid = int(entry.name)
                try:
                    text = read_bounded(Path(entry.path) / "stat", STAT_BUFFER_SIZE)
                except SourceUnavailable:
                    continue  # Process exited between listing and read

                try:
                    records.append(
                        parse_stat_record(
                            pid, text, name_max_length=name_max_length, lenient=lenient
                        )
                    )
                except ParseShortfall as e:
                    log.debug("stat_record_skipped", pid=pid, reason=str(e))
    except OSError as e:
        raise SourceUnavailable(proc_root, e) from e

    return records


def top_n(records: Iterable[ProcessRecord], n: int) -> list[ProcessRecord]:
    """Return the n records with the most CPU ticks, highest first.

    Ties keep their input order.
    """
    if n <= 0:
        return []
    return sorted(records, key=lambda r: r.cpu_ticks, reverse=True)[:n]
