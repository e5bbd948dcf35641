"""Tests for session orchestration and cancellation."""

import os
import signal
import threading
import time
from collections.abc import Iterable
from pathlib import Path

import pytest
from rich.console import Console

from conftest import STAT_CURR, FakeProc
from sysmonitor.collector import ProcessRecord
from sysmonitor.display import ConsoleDisplay
from sysmonitor.session import Cancellation, Operation, SystemMonitor


def output(console: Console) -> str:
    return console.file.getvalue()  # type: ignore[attr-defined]


def activity_lines(path: Path) -> list[str]:
    """Activity log messages without their timestamps."""
    if not path.exists():
        return []
    return [line.split("] ", 1)[1] for line in path.read_text().splitlines()]


def scripted(lines: Iterable[str | None]):
    """Input source returning lines in order, then end of input."""
    remaining = list(lines)
    prompts: list[str] = []

    def read_line(prompt: str) -> str | None:
        prompts.append(prompt)
        return remaining.pop(0) if remaining else None

    read_line.prompts = prompts  # type: ignore[attr-defined]
    return read_line


class TestCancellation:
    """Tests for the cancellation token."""

    def test_starts_uncancelled(self) -> None:
        token = Cancellation()
        assert not token.cancelled
        assert token.wait(0) is False

    def test_cancel(self) -> None:
        token = Cancellation()
        token.cancel()
        assert token.cancelled
        assert token.wait(0) is True

    def test_wait_returns_early_on_cancel(self) -> None:
        token = Cancellation()
        threading.Timer(0.05, token.cancel).start()
        start = time.monotonic()
        assert token.wait(30) is True
        assert time.monotonic() - start < 5

    def test_sigint_cancels_inside_trap(self, capfd) -> None:
        token = Cancellation()
        with token.trap_signals():
            os.kill(os.getpid(), signal.SIGINT)
            # Handler runs on the main thread at the next bytecode boundary
            token.wait(1)
        assert token.cancelled
        assert "Caught SIGINT. Exiting gracefully..." in capfd.readouterr().out

    def test_signal_while_event_lock_is_held(self, capfd) -> None:
        """A signal landing inside Event internals must not block the handler."""
        token = Cancellation()
        with token._event._cond:
            token._handle_signal(signal.SIGTERM, None)
            assert token.cancelled
            assert token.wait(5) is True
        assert token._event.wait(5)
        assert "Caught SIGTERM. Exiting gracefully..." in capfd.readouterr().out

    def test_previous_handler_restored(self) -> None:
        before = signal.getsignal(signal.SIGINT)
        with Cancellation().trap_signals():
            assert signal.getsignal(signal.SIGINT) is not before
        assert signal.getsignal(signal.SIGINT) is before


class TestChecks:
    """Tests for the one-shot checks."""

    def test_check_cpu_reference_scenario(
        self, fast_config, display, console, activity_path, fake_proc: FakeProc
    ) -> None:
        class SwapStatOnWait(Cancellation):
            def wait(self, timeout: float) -> bool:
                fake_proc.write_stat(STAT_CURR)
                return super().wait(0)

        monitor = SystemMonitor(
            fast_config,
            display=display,
            cancellation=SwapStatOnWait(),
            proc_root=fake_proc.root,
        )
        monitor.activity.path = activity_path

        assert monitor.check_cpu() == 75.0
        assert "CPU Usage: 75.00%" in output(console)
        assert activity_lines(activity_path) == ["CPU Usage checked: 75.00%"]

    def test_check_cpu_source_unavailable(
        self, monitor: SystemMonitor, console, activity_path, fake_proc: FakeProc
    ) -> None:
        (fake_proc.root / "stat").unlink()
        assert monitor.check_cpu() is None
        assert "Could not read CPU usage." in output(console)
        assert activity_lines(activity_path) == []

    def test_check_memory(self, monitor: SystemMonitor, console, activity_path) -> None:
        usage = monitor.check_memory()
        assert usage is not None
        assert usage.used_kb == 750000
        assert usage.used_percent == 75.0
        assert "Used Memory:  732 MB (75.00%)" in output(console)
        assert activity_lines(activity_path) == ["Memory checked: Used 732 MB (75.00%)"]

    def test_check_memory_without_memtotal(
        self, monitor: SystemMonitor, console, activity_path, fake_proc: FakeProc
    ) -> None:
        fake_proc.write_meminfo("MemFree: 10 kB\nMemAvailable: 5 kB\n")
        assert monitor.check_memory() is None
        assert "Could not read memory info." in output(console)
        assert activity_lines(activity_path) == []

    def test_check_memory_degraded_warns(
        self, monitor: SystemMonitor, activity_path, fake_proc: FakeProc, capsys
    ) -> None:
        fake_proc.write_meminfo("MemTotal: 1000 kB\nMemAvailable: 2000 kB\n")
        usage = monitor.check_memory()
        assert usage is not None
        assert usage.degraded
        assert usage.used_kb == -1000
        assert "exceeds MemTotal" in capsys.readouterr().out
        assert len(activity_lines(activity_path)) == 1

    def test_check_memory_without_memtotal_warns(
        self, monitor: SystemMonitor, fake_proc: FakeProc, capsys
    ) -> None:
        fake_proc.write_meminfo("MemAvailable: 5 kB\n")
        assert monitor.check_memory() is None
        assert "MemTotal not found" in capsys.readouterr().out

    def test_check_memory_source_unavailable(
        self, monitor: SystemMonitor, console, fake_proc: FakeProc
    ) -> None:
        (fake_proc.root / "meminfo").unlink()
        assert monitor.check_memory() is None
        assert "Could not read memory info." in output(console)

    def test_list_top_processes(self, monitor: SystemMonitor, console, activity_path) -> None:
        top = monitor.list_top_processes()
        assert top == [
            ProcessRecord(777, "python3", 900),
            ProcessRecord(1, "systemd", 500),
            ProcessRecord(2, "kthreadd", 5),
        ]
        assert "python3" in output(console)
        assert activity_lines(activity_path) == ["Checked Top 5 Processes."]

    def test_list_top_processes_respects_top_count(self, monitor: SystemMonitor) -> None:
        monitor.config.processes.top_count = 1
        top = monitor.list_top_processes()
        assert top is not None
        assert [r.pid for r in top] == [777]

    def test_list_top_processes_missing_root(self, fast_config, display, console, tmp_path) -> None:
        monitor = SystemMonitor(fast_config, display=display, proc_root=tmp_path / "gone")
        monitor.activity.path = tmp_path / "syslog.txt"
        assert monitor.list_top_processes() is None
        assert "Could not read process list." in output(console)

    @pytest.mark.parametrize(
        "operation, expected_type",
        [(Operation.CPU, float), (Operation.MEMORY, object), (Operation.PROCESSES, list)],
    )
    def test_run_once(self, monitor: SystemMonitor, operation, expected_type) -> None:
        assert isinstance(monitor.run_once(operation), expected_type)

    def test_activity_failure_does_not_abort_check(
        self, monitor: SystemMonitor, tmp_path: Path, capsys
    ) -> None:
        monitor.activity.path = tmp_path / "no-such-dir" / "syslog.txt"
        assert monitor.check_memory() is not None
        assert "Error writing to" in capsys.readouterr().err


class CancelAfterCycles(ConsoleDisplay):
    """Display that cancels the session once the banner has been shown n times."""

    def __init__(self, console: Console, token: Cancellation, cycles: int) -> None:
        super().__init__(console)
        self.token = token
        self.cycles = cycles
        self.banners = 0

    def continuous_banner(self, interval: int) -> None:
        super().continuous_banner(interval)
        self.banners += 1
        if self.banners >= self.cycles:
            self.token.cancel()


class TestContinuous:
    """Tests for continuous mode."""

    def test_stops_after_cancel_without_new_cycle(
        self, fast_config, console, activity_path, fake_proc: FakeProc
    ) -> None:
        token = Cancellation()
        display = CancelAfterCycles(console, token, cycles=2)
        monitor = SystemMonitor(
            fast_config, display=display, cancellation=token, proc_root=fake_proc.root
        )
        monitor.activity.path = activity_path

        start = time.monotonic()
        cycles = monitor.run_continuous(interval=1)

        assert cycles == 2
        assert time.monotonic() - start < 10
        assert display.banners == 2
        text = output(console)
        assert "Refreshing in 1 seconds..." in text
        assert "Continuous monitoring stopped." in text

    def test_cycle_runs_all_checks(
        self, fast_config, console, activity_path, fake_proc: FakeProc
    ) -> None:
        token = Cancellation()
        display = CancelAfterCycles(console, token, cycles=1)
        monitor = SystemMonitor(
            fast_config, display=display, cancellation=token, proc_root=fake_proc.root
        )
        monitor.activity.path = activity_path

        monitor.run_continuous(interval=1)

        assert activity_lines(activity_path) == [
            "Started Continuous Monitoring.",
            "CPU Usage checked: 0.00%",
            "Memory checked: Used 732 MB (75.00%)",
            "Checked Top 5 Processes.",
        ]

    def test_cancel_interrupts_interval_sleep(self, monitor: SystemMonitor) -> None:
        threading.Timer(0.2, monitor.cancellation.cancel).start()
        start = time.monotonic()
        cycles = monitor.run_continuous(interval=3600)
        assert cycles >= 1
        assert time.monotonic() - start < 10

    def test_already_cancelled_runs_no_cycle(self, monitor: SystemMonitor) -> None:
        monitor.cancellation.cancel()
        assert monitor.run_continuous(interval=1) == 0


class TestInteractive:
    """Tests for the interactive menu."""

    def test_exit_choice(self, monitor: SystemMonitor, console, activity_path) -> None:
        monitor.run_interactive(scripted(["5\n"]))
        assert "Exiting SysMonitor++..." in output(console)
        assert activity_lines(activity_path) == [
            "System Monitor started.",
            "System Monitor exited by user.",
        ]
        assert not monitor.cancellation.cancelled

    def test_memory_then_exit(self, monitor: SystemMonitor, console, activity_path) -> None:
        read_line = scripted(["2\n", "\n", "5\n"])
        monitor.run_interactive(read_line)
        assert "Memory checked: Used 732 MB (75.00%)" in activity_lines(activity_path)
        assert "\nPress Enter to return to menu..." in read_line.prompts

    def test_invalid_input(self, monitor: SystemMonitor, console) -> None:
        monitor.run_interactive(scripted(["abc\n", "5\n"]))
        assert "Invalid input. Please enter a number." in output(console)

    def test_invalid_choice(self, monitor: SystemMonitor, console) -> None:
        monitor.run_interactive(scripted(["9\n", "\n", "5\n"]))
        assert "Invalid choice. Please try again." in output(console)

    def test_invalid_interval(self, monitor: SystemMonitor, console) -> None:
        monitor.run_interactive(scripted(["4\n", "0\n", "\n", "5\n"]))
        assert "Invalid interval." in output(console)

    def test_interactive_interval_has_no_upper_bound(self, monitor: SystemMonitor) -> None:
        intervals: list[int] = []

        def fake_continuous(interval: int) -> int:
            intervals.append(interval)
            return 0

        monitor.run_continuous = fake_continuous  # type: ignore[method-assign]
        monitor.run_interactive(scripted(["4\n", "7200\n", "\n", "5\n"]))
        assert intervals == [7200]

    def test_end_of_input_terminates(self, monitor: SystemMonitor, activity_path) -> None:
        monitor.run_interactive(scripted([]))
        assert monitor.cancellation.cancelled
        assert activity_lines(activity_path) == [
            "System Monitor started.",
            "System Monitor terminated.",
        ]

    def test_keyboard_interrupt_terminates(self, monitor: SystemMonitor, activity_path) -> None:
        def interrupted(prompt: str) -> str | None:
            raise KeyboardInterrupt

        monitor.run_interactive(interrupted)
        assert monitor.cancellation.cancelled
        assert activity_lines(activity_path)[-1] == "System Monitor terminated."

    def test_cancelled_continuous_ends_session(self, monitor: SystemMonitor) -> None:
        """After continuous mode is cancelled the menu is not shown again."""
        read_line = scripted(["4\n", "1\n", "5\n"])

        def cancelling_continuous(interval: int) -> int:
            monitor.cancellation.cancel()
            return 1

        monitor.run_continuous = cancelling_continuous  # type: ignore[method-assign]
        monitor.run_interactive(read_line)
        assert read_line.prompts == [
            "Enter your choice: ",
            "Enter refresh interval (seconds): ",
        ]
