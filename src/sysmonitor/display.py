"""Rich rendering of CPU, memory and process reports."""

from collections.abc import Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from sysmonitor.collector import ProcessRecord
from sysmonitor.formatting import format_percent, kb_to_mb
from sysmonitor.metrics import MemoryUsage

RULE = "=" * 45
MENU_RULE = "=" * 40

MENU_ITEMS = [
    "CPU Usage",
    "Memory Usage",
    "Top {top_count} Processes (CPU)",
    "Continuous Monitoring",
    "Exit",
]


class ConsoleDisplay:
    """Display sink writing plain reports to a Rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)

    def message(self, text: str) -> None:
        """Print a line of plain text (no markup)."""
        self.console.print(text, markup=False)

    def clear(self) -> None:
        """Clear the screen; a no-op unless writing to a terminal."""
        if self.console.is_terminal:
            self.console.clear()

    # ─────────────────────────────────────────────────────────────────────────
    # Reports
    # ─────────────────────────────────────────────────────────────────────────

    def cpu_header(self, sample_seconds: float) -> None:
        self.message("\n--- CPU Usage ---")
        self.message(f"Measuring CPU usage (sampling {sample_seconds:g} second)...")

    def cpu_usage(self, percent: float) -> None:
        self.message(f"CPU Usage: {format_percent(percent)}")

    def memory_usage(self, usage: MemoryUsage | None) -> None:
        self.message("\n--- Memory Usage ---")
        if usage is None:
            self.message("Could not read memory info.")
            return
        self.message(f"Total Memory: {kb_to_mb(usage.total_kb)} MB")
        self.message(
            f"Used Memory:  {kb_to_mb(usage.used_kb)} MB ({format_percent(usage.used_percent)})"
        )
        self.message(f"Free Memory:  {kb_to_mb(usage.available_kb)} MB")

    def top_processes(self, records: Sequence[ProcessRecord], count: int) -> None:
        """Render the ranked process table."""
        self.message(f"\n--- Top {count} Processes (by Accumulated CPU Time) ---")
        table = Table(box=None, show_edge=False, pad_edge=False, header_style="bold")
        table.add_column("PID", justify="left", min_width=8)
        table.add_column("Name", min_width=20, overflow="fold")
        table.add_column("CPU Time (ticks)", justify="right")
        for record in records:
            table.add_row(str(record.pid), Text(record.name), str(record.cpu_ticks))
        self.console.print(table)

    # ─────────────────────────────────────────────────────────────────────────
    # Session chrome
    # ─────────────────────────────────────────────────────────────────────────

    def continuous_banner(self, interval: int) -> None:
        self.message(RULE)
        self.message("   SysMonitor++ - Continuous Monitoring")
        self.message(f"   Refresh Interval: {interval} seconds")
        self.message("   (Press Ctrl+C to stop)")
        self.message(RULE)

    def menu(self, top_count: int = 5) -> None:
        self.clear()
        self.message(MENU_RULE)
        self.message("       SysMonitor++ - System Monitor")
        self.message(MENU_RULE)
        for number, label in enumerate(MENU_ITEMS, start=1):
            self.message(f"{number}. {label.format(top_count=top_count)}")
        self.message(MENU_RULE)
