"""Shared test fixtures for sysmonitor."""

import io
import logging
import logging.handlers
from pathlib import Path

import pytest
import structlog
from rich.console import Console

from sysmonitor.config import Config
from sysmonitor.display import ConsoleDisplay
from sysmonitor.logging import ActivityLog
from sysmonitor.session import Cancellation, SystemMonitor

STAT_PREV = (
    "cpu  100 0 50 800 10 0 0 0 0 0\n"
    "cpu0 50 0 25 400 5 0 0 0 0 0\n"
    "cpu1 50 0 25 400 5 0 0 0 0 0\n"
    "intr 12345 0 0 0\n"
    "ctxt 987654\n"
    "btime 1706000000\n"
)
STAT_CURR = (
    "cpu  120 0 60 810 10 0 0 0 0 0\n"
    "cpu0 60 0 30 405 5 0 0 0 0 0\n"
    "cpu1 60 0 30 405 5 0 0 0 0 0\n"
    "intr 12400 0 0 0\n"
)
MEMINFO = (
    "MemTotal:        1000000 kB\n"
    "MemFree:          100000 kB\n"
    "MemAvailable:     250000 kB\n"
    "Buffers:           20000 kB\n"
    "Cached:           300000 kB\n"
    "SwapTotal:       2097148 kB\n"
)


def make_stat_record(pid: int, name: str, utime: int, stime: int, state: str = "S") -> str:
    """Build a realistic /proc/<pid>/stat line."""
    return (
        f"{pid} ({name}) {state} 1 {pid} {pid} 0 -1 4194560 1520 0 12 0 "
        f"{utime} {stime} 0 0 20 0 1 0 5021 171765760 2817 18446744073709551615\n"
    )


class FakeProc:
    """A directory tree standing in for /proc."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def write_stat(self, text: str) -> None:
        (self.root / "stat").write_text(text)

    def write_meminfo(self, text: str) -> None:
        (self.root / "meminfo").write_text(text)

    def add_process(self, pid: int, name: str, utime: int = 0, stime: int = 0) -> None:
        self.add_raw_process(pid, make_stat_record(pid, name, utime, stime))

    def add_raw_process(self, pid: int | str, text: str) -> None:
        pid_dir = self.root / str(pid)
        pid_dir.mkdir()
        (pid_dir / "stat").write_text(text)

    def add_entry(self, name: str) -> None:
        """Add a non-process directory entry (e.g. "self", "sys")."""
        (self.root / name).mkdir()


@pytest.fixture
def fake_proc(tmp_path: Path) -> FakeProc:
    """A fake /proc with CPU and memory counters and three processes."""
    proc = FakeProc(tmp_path / "proc")
    proc.write_stat(STAT_PREV)
    proc.write_meminfo(MEMINFO)
    proc.add_process(1, "systemd", utime=300, stime=200)
    proc.add_process(2, "kthreadd", utime=0, stime=5)
    proc.add_process(777, "python3", utime=850, stime=50)
    proc.add_entry("self")
    proc.add_entry("sys")
    return proc


@pytest.fixture
def console() -> Console:
    """A Rich console that records output (not a terminal)."""
    return Console(file=io.StringIO(), width=120, highlight=False)


@pytest.fixture
def display(console: Console) -> ConsoleDisplay:
    """Display sink writing to the recording console."""
    return ConsoleDisplay(console)


@pytest.fixture
def fast_config() -> Config:
    """Config with no sampling pauses."""
    config = Config()
    config.sampling.cpu_sample_seconds = 0
    config.sampling.invalid_input_pause = 0
    return config


@pytest.fixture
def activity_path(tmp_path: Path) -> Path:
    """Path of the activity log for a test."""
    return tmp_path / "syslog.txt"


@pytest.fixture
def monitor(
    fast_config: Config,
    display: ConsoleDisplay,
    activity_path: Path,
    fake_proc: FakeProc,
) -> SystemMonitor:
    """SystemMonitor wired to the fake /proc and a recording display."""
    return SystemMonitor(
        fast_config,
        display=display,
        activity=ActivityLog(activity_path, clock=lambda: 1706000000.0),
        cancellation=Cancellation(),
        proc_root=fake_proc.root,
    )


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop file handlers and structlog config installed by configure()."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
    structlog.reset_defaults()
