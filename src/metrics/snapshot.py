"""
Metrics Snapshots

A snapshot bundles every derived frame of one run. Snapshots are published
by swapping a single reference, so readers see either the previous complete
snapshot or the new complete snapshot.
"""

import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Optional

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

FACT_NAMES = [
    "churn_monthly",
    "activity_monthly",
    "cohort_retention",
    "cohort_churn",
    "cohort_engagement",
    "cohort_ltv",
]


@dataclass(frozen=True)
class MetricsSnapshot:
    """Derived frames of one pipeline run"""
    run_id: str
    snapshot_horizon: date
    calendar: pl.DataFrame
    memberships: pl.DataFrame
    cohorts: pl.DataFrame
    churn_monthly: pl.DataFrame
    activity_monthly: pl.DataFrame
    cohort_retention: pl.DataFrame
    cohort_churn: pl.DataFrame
    cohort_engagement: pl.DataFrame
    cohort_ltv: pl.DataFrame
    retention_curve: pl.DataFrame
    computed_at: datetime = field(default_factory=datetime.utcnow)

    def facts(self) -> Dict[str, pl.DataFrame]:
        """The six published fact sets by name"""
        return {name: getattr(self, name) for name in FACT_NAMES}

    def tables(self) -> Dict[str, pl.DataFrame]:
        """Every frame in the snapshot, dimensions included"""
        tables = {
            "calendar_months": self.calendar,
            "memberships": self.memberships,
            "cohorts": self.cohorts,
        }
        tables.update(self.facts())
        tables["cohort_retention_curve"] = self.retention_curve
        return tables

    def summary(self) -> Dict[str, int]:
        """Row counts per table"""
        return {name: frame.height for name, frame in self.tables().items()}


class SnapshotStore:
    """
    Holds the current snapshot.

    Example:
        store = SnapshotStore()
        store.publish(snapshot)
        churn = store.current.churn_monthly
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._current: Optional[MetricsSnapshot] = None

    @property
    def current(self) -> Optional[MetricsSnapshot]:
        """Most recently published snapshot, or None"""
        with self._lock:
            return self._current

    def publish(self, snapshot: MetricsSnapshot) -> Optional[MetricsSnapshot]:
        """Replace the current snapshot, returning the one it replaced"""
        with self._lock:
            previous, self._current = self._current, snapshot

        logger.info(
            "Snapshot published",
            run_id=snapshot.run_id,
            replaced_run_id=previous.run_id if previous else None,
        )
        return previous
