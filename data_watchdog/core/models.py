"""
Input records supplied by external collaborators.

Counter readers, carrier message parsers and stores hand these to the engine.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from .units import clamp_bytes


@dataclass(frozen=True)
class UsageSample:
    """One interval's consumption for one application."""
    app_id: str
    bytes: int
    mobile_bytes: Optional[int] = None  # share observed on a metered interface


@dataclass(frozen=True)
class BundleState:
    """Current allowance state for the billing cycle.

    Read-only to the engine. Negative fields are tolerated and clamped by
    the derived properties.
    """
    total_capacity_bytes: int
    used_bytes: int
    days_elapsed: int
    total_days: int

    @property
    def remaining_bytes(self) -> int:
        """Allowance left, never negative."""
        return max(0, clamp_bytes(self.total_capacity_bytes) - clamp_bytes(self.used_bytes))

    @property
    def days_remaining(self) -> int:
        """Days until renewal, never negative."""
        return max(0, self.total_days - self.days_elapsed)


@dataclass(frozen=True)
class BundleContext:
    """Budget context used by drain detection to scale tier thresholds."""
    remaining_bytes: int
    days_remaining: int
    used_bytes: int = 0
    total_capacity_bytes: int = 0
    total_days: Optional[int] = None

    @classmethod
    def from_bundle(cls, bundle: BundleState) -> "BundleContext":
        """Derive the detection context from a bundle state."""
        return cls(
            remaining_bytes=bundle.remaining_bytes,
            days_remaining=bundle.days_remaining,
            used_bytes=clamp_bytes(bundle.used_bytes),
            total_capacity_bytes=clamp_bytes(bundle.total_capacity_bytes),
            total_days=bundle.total_days
        )


@dataclass(frozen=True)
class DailyUsage:
    """Aggregate usage for one labelled day."""
    label: str
    bytes: int


def split_samples(samples: Iterable[UsageSample]) -> Tuple[Dict[str, int], Dict[str, int]]:
    """Fold samples into a snapshot and a metered-interface split.

    Repeated app ids are summed. Entries that are not UsageSample records
    are skipped.
    """
    snapshot: Dict[str, int] = {}
    mobile: Dict[str, int] = {}
    for sample in samples:
        if not isinstance(sample, UsageSample):
            continue
        snapshot[sample.app_id] = snapshot.get(sample.app_id, 0) + clamp_bytes(sample.bytes)
        if sample.mobile_bytes is not None:
            mobile[sample.app_id] = mobile.get(sample.app_id, 0) + clamp_bytes(sample.mobile_bytes)
    return snapshot, mobile
