"""
Recorded cycle input loading.

Reads a YAML description of one evaluation cycle so it can be replayed
offline through the engine.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from data_watchdog.core.models import BundleState, DailyUsage


@dataclass(frozen=True)
class CycleInput:
    """One cycle's worth of collaborator data."""
    snapshot: Dict[str, int]
    mobile: Optional[Dict[str, int]] = None
    history: Dict[str, List[int]] = field(default_factory=dict)
    bundle: Optional[BundleState] = None
    daily_history: List[DailyUsage] = field(default_factory=list)


_ALLOWED_KEYS = {'snapshot', 'mobile', 'history', 'bundle', 'daily_history'}
_BUNDLE_KEYS = ('total_capacity_bytes', 'used_bytes', 'days_elapsed', 'total_days')


def load_cycle_input(path: str) -> CycleInput:
    """Load and validate a recorded cycle from a YAML file.

    Args:
        path: Path to YAML cycle file

    Returns:
        Validated CycleInput

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the cycle description is invalid
    """
    cycle_path = Path(path)
    if not cycle_path.exists():
        raise FileNotFoundError(f"Cycle file not found: {path}")

    with open(cycle_path, 'r', encoding='utf-8') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in cycle file {path}: {e}")

    if not raw:
        raise ValueError("Cycle file is empty")
    if not isinstance(raw, dict):
        raise ValueError("Cycle file must be a mapping")

    unknown_keys = set(raw.keys()) - _ALLOWED_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown cycle keys: {unknown_keys}")

    if 'snapshot' not in raw:
        raise ValueError("Missing required 'snapshot' section")

    snapshot = _parse_byte_map(raw['snapshot'], 'snapshot')
    mobile = _parse_byte_map(raw['mobile'], 'mobile') if raw.get('mobile') is not None else None

    history_data = raw.get('history')
    if history_data is None:
        history_data = {}
    if not isinstance(history_data, dict):
        raise ValueError("'history' must be a dictionary")
    history = {}
    for app_id, samples in history_data.items():
        if not isinstance(samples, list):
            raise ValueError(f"'history.{app_id}' must be a list")
        history[str(app_id)] = [_parse_bytes(v, f"history.{app_id}[{i}]") for i, v in enumerate(samples)]

    bundle = _parse_bundle(raw['bundle']) if raw.get('bundle') is not None else None

    daily_data = raw.get('daily_history')
    if daily_data is None:
        daily_data = []
    if not isinstance(daily_data, list):
        raise ValueError("'daily_history' must be a list")
    daily_history = [_parse_daily(entry, i) for i, entry in enumerate(daily_data)]

    return CycleInput(
        snapshot=snapshot,
        mobile=mobile,
        history=history,
        bundle=bundle,
        daily_history=daily_history
    )


def _parse_bytes(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{path}' must be an integer byte count")
    if value < 0:
        raise ValueError(f"'{path}' must be >= 0")
    return value


def _parse_byte_map(data: Any, path: str) -> Dict[str, int]:
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return {str(app_id): _parse_bytes(value, f"{path}.{app_id}") for app_id, value in data.items()}


def _parse_bundle(data: Any) -> BundleState:
    """Parse the bundle section; all four fields are required."""
    if not isinstance(data, dict):
        raise ValueError("'bundle' must be a dictionary")

    unknown_keys = set(data.keys()) - set(_BUNDLE_KEYS)
    if unknown_keys:
        raise ValueError(f"Unknown keys in bundle: {unknown_keys}")
    for key in _BUNDLE_KEYS:
        if key not in data:
            raise ValueError(f"Missing required '{key}' in bundle")

    bundle = BundleState(**{key: _parse_bytes(data[key], f"bundle.{key}") for key in _BUNDLE_KEYS})
    if bundle.total_capacity_bytes <= 0:
        raise ValueError("'bundle.total_capacity_bytes' must be > 0")
    if bundle.total_days <= 0:
        raise ValueError("'bundle.total_days' must be > 0")
    return bundle


def _parse_daily(entry: Any, index: int) -> DailyUsage:
    path = f"daily_history[{index}]"
    if not isinstance(entry, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    if 'bytes' not in entry:
        raise ValueError(f"Missing required 'bytes' in {path}")
    label = entry.get('label', f"day-{index + 1}")
    return DailyUsage(label=str(label), bytes=_parse_bytes(entry['bytes'], f"{path}.bytes"))
