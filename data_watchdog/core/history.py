"""
Rolling per-application usage history.

Keeps a bounded FIFO of the most recent interval samples for each app.
"""

import logging
from collections import deque
from typing import Deque, Dict, List

from .units import MIB, clamp_bytes

logger = logging.getLogger(__name__)

DEFAULT_MAX_SAMPLES = 10
DEFAULT_DRAIN_THRESHOLD_BYTES = 2 * MIB


class RollingHistoryStore:
    """Bounded chronological history of samples, keyed by app id.

    Index 0 of a history is the oldest retained sample. Appending beyond
    capacity evicts the single oldest sample. The store holds no lock of its
    own; callers sharing it across threads serialize access (see
    ``EngineState``).
    """

    def __init__(
        self,
        max_samples: int = DEFAULT_MAX_SAMPLES,
        drain_threshold_bytes: float = DEFAULT_DRAIN_THRESHOLD_BYTES
    ):
        """Initialize an empty store.

        Args:
            max_samples: Samples retained per app (must be >= 1)
            drain_threshold_bytes: Mean per-interval usage above which an
                app is considered draining

        Raises:
            ValueError: If max_samples is less than 1
        """
        if max_samples < 1:
            raise ValueError("max_samples must be >= 1")
        self.max_samples = max_samples
        self.drain_threshold_bytes = drain_threshold_bytes
        self._histories: Dict[str, Deque[int]] = {}

    def record(self, app_id: str, bytes_used) -> None:
        """Append one sample to an app's history, evicting the oldest if full."""
        history = self._histories.get(app_id)
        if history is None:
            history = deque(maxlen=self.max_samples)
            self._histories[app_id] = history
        history.append(clamp_bytes(bytes_used))

    def history_of(self, app_id: str) -> List[int]:
        """Return retained samples, oldest first (empty if unknown)."""
        return list(self._histories.get(app_id, ()))

    def apps(self) -> List[str]:
        """Return app ids with retained history, in first-seen order."""
        return list(self._histories)

    def clear(self, app_id: str) -> None:
        self._histories.pop(app_id, None)

    def clear_all(self) -> None:
        self._histories.clear()

    def is_draining(self, app_id: str) -> bool:
        """Check whether the last three samples average above the drain threshold.

        Histories shorter than three samples are never draining.
        """
        history = self.history_of(app_id)
        if len(history) < 3:
            return False
        recent = history[-3:]
        draining = sum(recent) / len(recent) > self.drain_threshold_bytes
        if draining:
            logger.debug("App %s is draining (recent samples: %s)", app_id, recent)
        return draining

    def drain_rate(self, app_id: str) -> float:
        """Mean retained usage in MiB per interval (0.0 when empty)."""
        history = self.history_of(app_id)
        if not history:
            return 0.0
        return (sum(history) / len(history)) / MIB

    def __len__(self) -> int:
        return len(self._histories)
