"""CLI commands for sysmonitor."""

import click

from sysmonitor.formatting import parse_int
from sysmonitor.procfs import InvalidUserInput


def _load_config():
    """Load config and set up logging, exiting 1 on a broken config file."""
    from sysmonitor.config import Config
    from sysmonitor.logging import config_invalid, configure

    try:
        config = Config.load()
    except ValueError as e:
        config_invalid(str(e))
        raise SystemExit(1) from e
    configure(config)
    return config


def validate_interval(text: str, low: int = 1, high: int = 3600) -> int:
    """Parse a --continuous interval, requiring an integer in [low, high].

    Raises:
        InvalidUserInput: If text is not an integer or is out of range.
    """
    value = parse_int(text)
    if value is None or text != text.rstrip() or not low <= value <= high:
        raise InvalidUserInput(f"Invalid interval {text!r}; expected {low}-{high}")
    return value


def _run_continuous(config, text: str) -> None:
    from sysmonitor.logging import invalid_interval
    from sysmonitor.session import SystemMonitor

    sampling = config.sampling
    try:
        interval = validate_interval(text, sampling.min_interval, sampling.max_interval)
    except InvalidUserInput:
        invalid_interval(sampling.min_interval, sampling.max_interval)
        raise SystemExit(1) from None

    monitor = SystemMonitor(config)
    monitor.run_continuous(interval)
    monitor.activity.write("System Monitor terminated (Continuous Mode).")


@click.group(invoke_without_command=True)
@click.option(
    "--continuous",
    "-c",
    "interval",
    metavar="SECONDS",
    default=None,
    help="Refresh every SECONDS (1-3600) until Ctrl+C, without the menu.",
)
@click.version_option(package_name="sysmonitor")
@click.pass_context
def main(ctx: click.Context, interval: str | None) -> None:
    """Linux CPU, memory and process monitor.

    With no command, shows the interactive menu.
    """
    if ctx.invoked_subcommand is not None:
        return

    config = _load_config()
    if interval is not None:
        _run_continuous(config, interval)
        return

    from sysmonitor.session import SystemMonitor

    SystemMonitor(config).run_interactive()


@main.command()
def cpu() -> None:
    """Sample CPU utilization once."""
    from sysmonitor.session import Operation, SystemMonitor

    SystemMonitor(_load_config()).run_once(Operation.CPU)


@main.command()
def memory() -> None:
    """Show memory usage once."""
    from sysmonitor.session import Operation, SystemMonitor

    SystemMonitor(_load_config()).run_once(Operation.MEMORY)


@main.command()
@click.option("--count", "-n", type=int, default=None, help="Number of processes to show")
def top(count: int | None) -> None:
    """List the processes with the most accumulated CPU time."""
    from sysmonitor.session import Operation, SystemMonitor

    config = _load_config()
    if count is not None:
        if count < 1:
            click.echo("Error: --count must be at least 1", err=True)
            raise SystemExit(1)
        config.processes.top_count = count
    SystemMonitor(config).run_once(Operation.PROCESSES)


@main.command()
@click.argument("interval")
def watch(interval: str) -> None:
    """Refresh all reports every INTERVAL seconds until Ctrl+C."""
    _run_continuous(_load_config(), interval)


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    from sysmonitor.config import Config

    try:
        cfg = Config.load()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from e

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo()
    click.echo("[sampling]")
    click.echo(f"  cpu_sample_seconds = {cfg.sampling.cpu_sample_seconds}")
    click.echo(f"  min_interval = {cfg.sampling.min_interval}")
    click.echo(f"  max_interval = {cfg.sampling.max_interval}")
    click.echo()
    click.echo("[processes]")
    click.echo(f"  max_processes = {cfg.processes.max_processes}")
    click.echo(f"  top_count = {cfg.processes.top_count}")
    click.echo(f"  name_max_length = {cfg.processes.name_max_length}")
    click.echo()
    click.echo("[parsing]")
    click.echo(f"  lenient = {str(cfg.parsing.lenient).lower()}")
    click.echo()
    click.echo("[logging]")
    click.echo(f"  activity_log = {cfg.logging.activity_log}")


@config.command("edit")
def config_edit() -> None:
    """Open config file in editor."""
    import os
    import subprocess

    from sysmonitor.config import Config
    from sysmonitor.logging import config_created

    cfg = Config.load()

    if not cfg.config_path.exists():
        cfg.save()
        config_created(str(cfg.config_path))

    editor = os.environ.get("EDITOR", "nano")
    subprocess.run([editor, str(cfg.config_path)])


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from sysmonitor.config import Config

    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")


if __name__ == "__main__":
    main()
