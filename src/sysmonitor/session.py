"""Session orchestration: one-shot checks, continuous refresh and the menu."""

import os
import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

import click
import structlog

from sysmonitor.collector import ProcessRecord, enumerate_processes, top_n
from sysmonitor.config import Config
from sysmonitor.display import ConsoleDisplay
from sysmonitor.formatting import format_percent, kb_to_mb, parse_int
from sysmonitor.logging import (
    ActivityLog,
    memory_reading_degraded,
    memtotal_missing,
    source_unavailable,
)
from sysmonitor.metrics import MemoryUsage, memory_usage, sample_cpu_utilization
from sysmonitor.procfs import SourceUnavailable, read_memory_counters

log = structlog.get_logger()

STDOUT_FILENO = 1

ReadLine = Callable[[str], str | None]


class Cancellation:
    """Cooperative cancellation token.

    Checked at loop boundaries; wait() returns as soon as cancel() is called,
    including from a signal handler.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._signalled = False

    @property
    def cancelled(self) -> bool:
        """Return True once cancel() has been called or a trapped signal arrived."""
        return self._signalled or self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds. Returns True if cancelled."""
        if timeout <= 0 or self._signalled:
            return self.cancelled
        return self._event.wait(timeout)

    def _handle_signal(self, signum: int, frame: object) -> None:
        # Event.set() takes a lock the interrupted thread may be holding
        self._signalled = True
        threading.Thread(target=self._event.set, daemon=True).start()
        name = signal.Signals(signum).name
        os.write(STDOUT_FILENO, f"\nCaught {name}. Exiting gracefully...\n".encode())

    @contextmanager
    def trap_signals(
        self, signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)
    ) -> Iterator["Cancellation"]:
        """Route signals to cancel() while the block runs.

        Previous handlers are restored on exit. Outside the main thread
        handlers cannot be installed, so the block runs untrapped.
        """
        if threading.current_thread() is not threading.main_thread():
            yield self
            return

        previous = {sig: signal.signal(sig, self._handle_signal) for sig in signals}
        try:
            yield self
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler if handler is not None else signal.SIG_DFL)


class Operation(Enum):
    """One-shot operations."""

    CPU = "cpu"
    MEMORY = "memory"
    PROCESSES = "processes"


_MENU_OPERATIONS = {
    1: Operation.CPU,
    2: Operation.MEMORY,
    3: Operation.PROCESSES,
}
MENU_CONTINUOUS = 4
MENU_EXIT = 5


def read_line(prompt: str) -> str | None:
    """Prompt on stdout and read one line from stdin. None at end of input."""
    click.echo(prompt, nl=False)
    line = click.get_text_stream("stdin").readline()
    return line if line else None


class SystemMonitor:
    """Runs CPU, memory and process checks against the display and activity log."""

    def __init__(
        self,
        config: Config,
        display: ConsoleDisplay | None = None,
        activity: ActivityLog | None = None,
        cancellation: Cancellation | None = None,
        proc_root: Path = Path("/proc"),
    ) -> None:
        self.config = config
        self.display = display or ConsoleDisplay()
        self.activity = activity or ActivityLog(config.activity_log_path)
        self.cancellation = cancellation or Cancellation()
        self.proc_root = proc_root

    # ─────────────────────────────────────────────────────────────────────────
    # Checks
    # ─────────────────────────────────────────────────────────────────────────

    def check_cpu(self) -> float | None:
        """Sample CPU utilization over cpu_sample_seconds and report it."""
        seconds = self.config.sampling.cpu_sample_seconds
        self.display.cpu_header(seconds)
        try:
            percent = sample_cpu_utilization(
                self.proc_root,
                interval=seconds,
                wait=self.cancellation.wait,
                lenient=self.config.parsing.lenient,
            )
        except SourceUnavailable as e:
            log.warning("cpu_source_unavailable", path=str(e.path))
            source_unavailable(str(e))
            self.display.message("Could not read CPU usage.")
            return None

        self.display.cpu_usage(percent)
        self.activity.write(f"CPU Usage checked: {format_percent(percent)}")
        return percent

    def check_memory(self) -> MemoryUsage | None:
        """Read memory counters and report usage."""
        try:
            snap = read_memory_counters(self.proc_root)
        except SourceUnavailable as e:
            log.warning("memory_source_unavailable", path=str(e.path))
            source_unavailable(str(e))
            self.display.memory_usage(None)
            return None

        usage = memory_usage(snap)
        self.display.memory_usage(usage)
        if usage is None:
            log.warning("memtotal_missing")
            memtotal_missing()
            return None
        if usage.degraded:
            log.warning(
                "memory_reading_degraded",
                total_kb=usage.total_kb,
                available_kb=usage.available_kb,
            )
            memory_reading_degraded(usage.total_kb, usage.available_kb)

        self.activity.write(
            f"Memory checked: Used {kb_to_mb(usage.used_kb)} MB "
            f"({format_percent(usage.used_percent)})"
        )
        return usage

    def list_top_processes(self) -> list[ProcessRecord] | None:
        """Enumerate processes and report the top_count by CPU ticks."""
        cfg = self.config.processes
        try:
            records = enumerate_processes(
                self.proc_root,
                max_processes=cfg.max_processes,
                name_max_length=cfg.name_max_length,
                lenient=self.config.parsing.lenient,
            )
        except SourceUnavailable as e:
            log.warning("process_source_unavailable", path=str(e.path))
            source_unavailable(str(e))
            self.display.message("Could not read process list.")
            return None

        top = top_n(records, cfg.top_count)
        self.display.top_processes(top, cfg.top_count)
        self.activity.write(f"Checked Top {cfg.top_count} Processes.")
        return top

    def run_once(self, operation: Operation) -> float | MemoryUsage | list[ProcessRecord] | None:
        """Run a single check."""
        if operation is Operation.CPU:
            return self.check_cpu()
        if operation is Operation.MEMORY:
            return self.check_memory()
        return self.list_top_processes()

    # ─────────────────────────────────────────────────────────────────────────
    # Loops
    # ─────────────────────────────────────────────────────────────────────────

    def run_continuous(self, interval: int) -> int:
        """Refresh every interval seconds until cancelled.

        Cancellation is checked before each cycle and cuts the interval
        sleep short. Returns the number of completed cycles.
        """
        self.display.message("\nStarting Continuous Monitoring... (Press Ctrl+C to stop)")
        self.activity.write("Started Continuous Monitoring.")
        log.info("continuous_started", interval=interval)

        cycles = 0
        with self.cancellation.trap_signals():
            while not self.cancellation.cancelled:
                self.display.clear()
                self.display.continuous_banner(interval)
                self.check_cpu()
                self.check_memory()
                self.list_top_processes()
                cycles += 1

                self.display.message(f"\nRefreshing in {interval} seconds...")
                self.cancellation.wait(interval)

        self.display.message("\nContinuous monitoring stopped.")
        log.info("continuous_stopped", cycles=cycles)
        return cycles

    def run_interactive(self, read_line: ReadLine = read_line) -> None:
        """Show the menu and run choices until exit, end of input or Ctrl+C."""
        self.activity.write("System Monitor started.")
        try:
            while not self.cancellation.cancelled:
                self.display.menu(self.config.processes.top_count)
                raw = read_line("Enter your choice: ")
                if raw is None:
                    self.cancellation.cancel()
                    break

                choice = parse_int(raw)
                if choice is None:
                    self.display.message("Invalid input. Please enter a number.")
                    self.cancellation.wait(self.config.sampling.invalid_input_pause)
                    continue

                if choice == MENU_EXIT:
                    self.display.message("Exiting SysMonitor++...")
                    self.activity.write("System Monitor exited by user.")
                    return

                if choice in _MENU_OPERATIONS:
                    self.run_once(_MENU_OPERATIONS[choice])
                elif choice == MENU_CONTINUOUS:
                    self._prompt_continuous(read_line)
                else:
                    self.display.message("Invalid choice. Please try again.")

                if not self.cancellation.cancelled:
                    if read_line("\nPress Enter to return to menu...") is None:
                        self.cancellation.cancel()
        except KeyboardInterrupt:
            self.cancellation.cancel()

        self.activity.write("System Monitor terminated.")

    def _prompt_continuous(self, read_line: ReadLine) -> None:
        # Any positive interval is accepted here; --continuous also caps it
        interval = parse_int(read_line("Enter refresh interval (seconds): "))
        if interval is not None and interval > 0:
            self.run_continuous(interval)
        else:
            self.display.message("Invalid interval.")
