"""
Cohort & Temporal Aggregation Engine

The orchestrator lives in ``src.metrics.pipeline``.
"""
from .activity import ActivityAggregator
from .calendar import CalendarBuilder
from .cohort_periods import CohortFacts, CohortPeriodEngine
from .cohorts import CohortAssigner
from .exceptions import (
    EmptyInputError,
    IntegrityError,
    InvalidRecordError,
    MetricsError,
    ValidationError,
)
from .memberships import MembershipConsolidator
from .monthly import PointInTimeAggregator
from .snapshot import MetricsSnapshot, SnapshotStore

__all__ = [
    "ActivityAggregator",
    "CalendarBuilder",
    "CohortFacts",
    "CohortPeriodEngine",
    "CohortAssigner",
    "EmptyInputError",
    "IntegrityError",
    "InvalidRecordError",
    "MetricsError",
    "ValidationError",
    "MembershipConsolidator",
    "PointInTimeAggregator",
    "MetricsSnapshot",
    "SnapshotStore",
]
