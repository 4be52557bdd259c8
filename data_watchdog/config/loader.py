"""
Configuration management and loading.

Handles detection thresholds and history tunables from YAML files.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml


@dataclass(frozen=True)
class HistoryConfig:
    """Rolling history tunables."""
    max_samples: int = 10
    drain_threshold_mib: float = 2.0
    interval_seconds: int = 60

    def __post_init__(self):
        """Validate history values are positive."""
        if self.max_samples < 1:
            raise ValueError("max_samples must be >= 1")
        if self.drain_threshold_mib <= 0:
            raise ValueError("drain_threshold_mib must be > 0")
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")


@dataclass(frozen=True)
class DrainConfig:
    """Thresholds for spike, mobile preference and pacing alerts."""
    spike_increase_percent: float = 150.0
    spike_min_increase_mib: float = 20.0
    mobile_min_total_mib: float = 50.0
    mobile_ratio: float = 0.7
    pacing_critical_deviation: float = 25.0
    pacing_high_deviation: float = 10.0

    def __post_init__(self):
        """Validate drain thresholds."""
        if self.spike_increase_percent <= 0:
            raise ValueError("spike_increase_percent must be > 0")
        if self.spike_min_increase_mib <= 0:
            raise ValueError("spike_min_increase_mib must be > 0")
        if self.mobile_min_total_mib <= 0:
            raise ValueError("mobile_min_total_mib must be > 0")
        if not 0 < self.mobile_ratio <= 1:
            raise ValueError("mobile_ratio must be in (0, 1]")
        if self.pacing_high_deviation <= 0:
            raise ValueError("pacing_high_deviation must be > 0")
        if self.pacing_critical_deviation <= self.pacing_high_deviation:
            raise ValueError("pacing_critical_deviation must be > pacing_high_deviation")


@dataclass(frozen=True)
class BundleCycleConfig:
    """Billing cycle defaults."""
    default_cycle_days: int = 30

    def __post_init__(self):
        if self.default_cycle_days < 1:
            raise ValueError("default_cycle_days must be >= 1")


@dataclass(frozen=True)
class WatchdogConfig:
    """Complete engine configuration."""
    history: HistoryConfig = field(default_factory=HistoryConfig)
    drain: DrainConfig = field(default_factory=DrainConfig)
    bundle: BundleCycleConfig = field(default_factory=BundleCycleConfig)


DEFAULT_CONFIG = WatchdogConfig()

_SECTIONS = {
    'history': HistoryConfig,
    'drain': DrainConfig,
    'bundle': BundleCycleConfig,
}

_INT_KEYS = {'max_samples', 'interval_seconds', 'default_cycle_days'}


def load_watchdog_config(path: str) -> WatchdogConfig:
    """Load and validate engine configuration from a YAML file.

    Every section is optional; missing keys keep their defaults. Validation
    is strict so a typo never silently falls back to a default threshold.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated WatchdogConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Watchdog config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return DEFAULT_CONFIG
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    unknown_keys = set(raw_config.keys()) - set(_SECTIONS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {}
    for name, section_type in _SECTIONS.items():
        section_data = raw_config.get(name)
        if section_data is None:
            section_data = {}
        if not isinstance(section_data, dict):
            raise ValueError(f"'{name}' must be a dictionary")
        sections[name] = _parse_section(section_data, section_type, name)

    return WatchdogConfig(**sections)


def _parse_section(data: Dict[str, Any], section_type: type, path: str):
    """Parse and validate one configuration section.

    Args:
        data: Raw section data
        section_type: Dataclass to build
        path: Path for error messages

    Returns:
        Validated section dataclass

    Raises:
        ValueError: If the section is invalid
    """
    allowed_keys = set(section_type.__dataclass_fields__)
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    values = {}
    for key, value in data.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' in {path} must be a number")
        if key in _INT_KEYS:
            if not float(value).is_integer():
                raise ValueError(f"'{key}' in {path} must be an integer")
            values[key] = int(value)
        else:
            values[key] = float(value)

    try:
        return section_type(**values)
    except ValueError as e:
        raise ValueError(f"Invalid {path} configuration: {e}")


def dump_default_config(path: str) -> None:
    """Write the default configuration as YAML.

    Args:
        path: Destination file path

    Raises:
        FileExistsError: If the destination already exists
    """
    config_path = Path(path)
    if config_path.exists():
        raise FileExistsError(f"Config file already exists: {path}")
    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(asdict(DEFAULT_CONFIG), f, sort_keys=False)
