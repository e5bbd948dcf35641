"""Configuration system for sysmonitor."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit


@dataclass
class SamplingConfig:
    """Sampling cadence and refresh interval bounds."""

    cpu_sample_seconds: float = 1.0  # Gap between the two /proc/stat snapshots
    min_interval: int = 1  # Lowest refresh interval accepted by --continuous
    max_interval: int = 3600  # Highest refresh interval accepted by --continuous
    invalid_input_pause: float = 1.0  # Pause after an invalid menu entry


@dataclass
class ProcessesConfig:
    """Process enumeration and ranking configuration.

    Enumeration stops after max_processes entries; processes beyond the cap
    are not considered for ranking.
    """

    max_processes: int = 1024
    top_count: int = 5  # Rows in the top processes report
    name_max_length: int = 255  # Process names are cut to this many characters


@dataclass
class ParsingConfig:
    """Parsing policy for kernel records.

    lenient: short or malformed records are zero-filled instead of rejected.
    """

    lenient: bool = True


@dataclass
class LoggingConfig:
    """Activity log and diagnostic log configuration."""

    activity_log: str = "syslog.txt"  # Relative paths resolve against the working dir
    log_max_bytes: int = 5 * 1024 * 1024  # Max diagnostic log size (5MB)
    log_backup_count: int = 3  # Number of rotated diagnostic logs to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    processes: ProcessesConfig = field(default_factory=ProcessesConfig)
    parsing: ParsingConfig = field(default_factory=ParsingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "sysmonitor"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for diagnostic logs."""
        return Path.home() / ".local" / "state" / "sysmonitor"

    @property
    def log_path(self) -> Path:
        """Diagnostic (JSON lines) log path."""
        return self.state_dir / "sysmonitor.log"

    @property
    def activity_log_path(self) -> Path:
        """Human-readable activity log path."""
        return Path(self.logging.activity_log).expanduser()

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ["sampling", "processes", "parsing", "logging"]:
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions.

        Raises:
            ValueError: If the file cannot be parsed or holds an invalid value.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            sampling=_load_sampling_config(data.get("sampling", {})),
            processes=_load_processes_config(data.get("processes", {})),
            parsing=_load_parsing_config(data.get("parsing", {})),
            logging=_load_logging_config(data.get("logging", {})),
        )


def _get(data: dict, key: str, default: object, kinds: tuple[type, ...]) -> object:
    """Return data[key] (or default), raising ValueError if it has the wrong type."""
    value = data.get(key, default)
    # bool is an int subclass; only accept it where bool is asked for
    if isinstance(value, bool) and bool not in kinds:
        raise ValueError(f"{key} must be a number, got {value!r}")
    if not isinstance(value, kinds):
        expected = " or ".join(k.__name__ for k in kinds)
        raise ValueError(f"{key} must be {expected}, got {value!r}")
    return value


def _load_sampling_config(data: dict) -> SamplingConfig:
    """Load sampling config, validating interval bounds."""
    defaults = SamplingConfig()

    cpu_sample_seconds = _get(
        data, "cpu_sample_seconds", defaults.cpu_sample_seconds, (int, float)
    )
    min_interval = _get(data, "min_interval", defaults.min_interval, (int,))
    max_interval = _get(data, "max_interval", defaults.max_interval, (int,))
    invalid_input_pause = _get(
        data, "invalid_input_pause", defaults.invalid_input_pause, (int, float)
    )

    if cpu_sample_seconds < 0:
        raise ValueError(f"cpu_sample_seconds must be >= 0, got {cpu_sample_seconds}")
    if min_interval < 1:
        raise ValueError(f"min_interval must be >= 1, got {min_interval}")
    if max_interval < min_interval:
        raise ValueError(
            f"max_interval must be >= min_interval ({min_interval}), got {max_interval}"
        )
    if invalid_input_pause < 0:
        raise ValueError(f"invalid_input_pause must be >= 0, got {invalid_input_pause}")

    return SamplingConfig(
        cpu_sample_seconds=float(cpu_sample_seconds),
        min_interval=int(min_interval),
        max_interval=int(max_interval),
        invalid_input_pause=float(invalid_input_pause),
    )


def _load_processes_config(data: dict) -> ProcessesConfig:
    """Load process enumeration config."""
    d = ProcessesConfig()
    values = {
        f.name: _get(data, f.name, getattr(d, f.name), (int,)) for f in fields(ProcessesConfig)
    }
    for name, value in values.items():
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")
    return ProcessesConfig(**{name: int(value) for name, value in values.items()})


def _load_parsing_config(data: dict) -> ParsingConfig:
    return ParsingConfig(lenient=_get(data, "lenient", ParsingConfig().lenient, (bool,)))


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load logging config."""
    d = LoggingConfig()
    log_max_bytes = _get(data, "log_max_bytes", d.log_max_bytes, (int,))
    log_backup_count = _get(data, "log_backup_count", d.log_backup_count, (int,))
    if log_max_bytes < 0:
        raise ValueError(f"log_max_bytes must be >= 0, got {log_max_bytes}")
    if log_backup_count < 0:
        raise ValueError(f"log_backup_count must be >= 0, got {log_backup_count}")
    return LoggingConfig(
        activity_log=str(_get(data, "activity_log", d.activity_log, (str,))),
        log_max_bytes=int(log_max_bytes),
        log_backup_count=int(log_backup_count),
    )
