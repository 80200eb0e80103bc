"""
Outbreak Risk Engine - Region Risk Store.

============================================================
PURPOSE
============================================================
Holds the current risk snapshot per region and a single
UI-facing selection cursor.

============================================================
ATOMICITY
============================================================
update() scores the whole batch into a new mapping before
touching the store. The new mapping replaces the old one in
a single assignment under the lock, so readers only ever see
a complete old set or a complete new set.

If any region fails to score, the previous set is retained
and SnapshotUpdateError is raised.

============================================================
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .scorer import RiskScorer
from .types import RegionObservation, RiskSnapshot, SnapshotUpdateError


logger = logging.getLogger(__name__)


class RegionRiskStore:
    """
    Snapshot set keyed by region id.

    Only the scheduler writes snapshots. select() may be called
    concurrently by an interactive caller.
    """

    def __init__(self, scorer: Optional[RiskScorer] = None):
        self._scorer = scorer or RiskScorer()
        self._snapshots: Dict[str, RiskSnapshot] = {}
        self._selected: Optional[str] = None
        self._last_updated_at: Optional[datetime] = None
        self._lock = threading.Lock()

    # --------------------------------------------------------
    # Writes
    # --------------------------------------------------------

    def update(
        self,
        observations: Iterable[RegionObservation],
        assessed_at: Optional[datetime] = None,
    ) -> Dict[str, RiskSnapshot]:
        """
        Rescore every region and replace the snapshot set.

        Args:
            observations: Full observation set for this tick
            assessed_at: Timestamp stamped on every snapshot

        Returns:
            The new snapshot set (a copy)

        Raises:
            SnapshotUpdateError: If any observation could not be scored.
                                 The store is left unchanged.
        """
        assessed_at = assessed_at or datetime.now(timezone.utc)
        new_snapshots: Dict[str, RiskSnapshot] = {}

        for observation in observations:
            region_id = getattr(observation, "region_id", None)
            try:
                snapshot = self._scorer.assess(observation, assessed_at=assessed_at)
            except Exception as e:
                raise SnapshotUpdateError(
                    f"Scoring failed for region {region_id}: {e}",
                    region_id=region_id,
                ) from e

            if snapshot.region_id in new_snapshots:
                logger.warning(
                    f"Duplicate observation for region {snapshot.region_id}, keeping the last one"
                )
            new_snapshots[snapshot.region_id] = snapshot

        with self._lock:
            self._snapshots = new_snapshots
            self._last_updated_at = assessed_at

        logger.debug(f"Snapshot set replaced with {len(new_snapshots)} regions")
        return dict(new_snapshots)

    def select(self, region_id: str) -> bool:
        """
        Move the selection cursor.

        Unknown region ids leave the cursor unchanged.

        Returns:
            True if the cursor moved to region_id
        """
        with self._lock:
            if region_id not in self._snapshots:
                return False
            self._selected = region_id
            return True

    def clear_selection(self) -> None:
        with self._lock:
            self._selected = None

    # --------------------------------------------------------
    # Reads
    # --------------------------------------------------------

    def get(self, region_id: str) -> Optional[RiskSnapshot]:
        """Return the snapshot for a region, or None if unknown."""
        with self._lock:
            return self._snapshots.get(region_id)

    def selected(self) -> Optional[str]:
        """Return the selected region id, or None."""
        with self._lock:
            return self._selected

    def selected_snapshot(self) -> Optional[RiskSnapshot]:
        with self._lock:
            if self._selected is None:
                return None
            return self._snapshots.get(self._selected)

    def snapshots(self) -> List[RiskSnapshot]:
        """Return the current snapshot set in observation order."""
        with self._lock:
            return list(self._snapshots.values())

    def as_dict(self) -> Dict[str, RiskSnapshot]:
        with self._lock:
            return dict(self._snapshots)

    @property
    def last_updated_at(self) -> Optional[datetime]:
        return self._last_updated_at

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)

    def __contains__(self, region_id: object) -> bool:
        with self._lock:
            return region_id in self._snapshots
