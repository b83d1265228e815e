"""
Metrics Pipeline

Orchestrates validation and the six engine stages in dependency order:

    calendar, memberships -> cohorts -> monthly memberships,
    monthly activity -> cohort periods

Each stage consumes the previous stages' frames by value. A run either
produces a complete MetricsSnapshot or raises; nothing is published on
failure.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, List, Optional

import polars as pl
import structlog

from src.config import get_settings
from src.quality.validators import validate_inputs
from .activity import ActivityAggregator
from .calendar import CalendarBuilder
from .cohort_periods import CohortFacts, CohortPeriodEngine
from .cohorts import CohortAssigner
from .memberships import MembershipConsolidator
from .monthly import PointInTimeAggregator
from .snapshot import MetricsSnapshot, SnapshotStore

logger = structlog.get_logger(__name__)
settings = get_settings()


class StageName(str, Enum):
    """Pipeline stages"""
    VALIDATION = "validation"
    MEMBERSHIPS = "memberships"
    CALENDAR = "calendar"
    COHORTS = "cohorts"
    MONTHLY_MEMBERSHIPS = "monthly_memberships"
    MONTHLY_ACTIVITY = "monthly_activity"
    COHORT_PERIODS = "cohort_periods"


@dataclass(frozen=True)
class PipelineInputs:
    """Typed input streams of one run"""
    users: pl.DataFrame
    subscriptions: pl.DataFrame
    workouts: pl.DataFrame


@dataclass
class StageResult:
    """Result of one pipeline stage"""
    stage: StageName
    output_rows: int
    started_at: datetime
    completed_at: datetime
    duration_seconds: float


@dataclass
class PipelineResult:
    """Result of a complete run"""
    run_id: str
    snapshot: MetricsSnapshot
    started_at: datetime
    completed_at: datetime
    stages: List[StageResult] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


def _row_count(output: Any) -> int:
    if isinstance(output, pl.DataFrame):
        return output.height
    if isinstance(output, CohortFacts):
        return sum(
            frame.height
            for frame in (output.retention, output.churn, output.engagement, output.ltv)
        )
    return 0


class MetricsPipeline:
    """
    Main metrics pipeline orchestrator.

    Example:
        pipeline = MetricsPipeline(snapshot_horizon=date(2025, 2, 28))
        result = pipeline.run(PipelineInputs(users_df, subscriptions_df, workouts_df))
        churn = result.snapshot.churn_monthly
    """

    def __init__(
        self,
        snapshot_horizon: Optional[date] = None,
        plans: Optional[List[str]] = None,
        validate: bool = True,
    ):
        self.snapshot_horizon = snapshot_horizon or settings.metrics.snapshot_horizon
        self.plans = plans or list(settings.metrics.plans)
        self.validate = validate

        self.consolidator = MembershipConsolidator(self.snapshot_horizon, self.plans)
        self.calendar_builder = CalendarBuilder(self.snapshot_horizon)
        self.cohort_assigner = CohortAssigner()
        self.point_in_time = PointInTimeAggregator()
        self.activity = ActivityAggregator()
        self.cohort_engine = CohortPeriodEngine()

    def _run_stage(
        self,
        stages: List[StageResult],
        stage: StageName,
        func: Callable[..., Any],
        *args: Any,
    ) -> Any:
        """Run one stage, recording its timing and output size"""
        started_at = datetime.utcnow()
        logger.debug("Stage started", stage=stage.value)

        try:
            output = func(*args)
        except Exception as e:
            logger.error("Stage failed", stage=stage.value, error=str(e))
            raise

        completed_at = datetime.utcnow()
        result = StageResult(
            stage=stage,
            output_rows=_row_count(output),
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
        )
        stages.append(result)

        logger.info(
            "Stage complete",
            stage=stage.value,
            rows=result.output_rows,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return output

    def run(self, inputs: PipelineInputs) -> PipelineResult:
        """
        Compute a full snapshot from the input streams.

        Args:
            inputs: Users, subscriptions and workouts frames

        Returns:
            PipelineResult holding the snapshot and per-stage timings

        Raises:
            ValidationError: malformed input
            IntegrityError: referential mismatch
            EmptyInputError: no memberships to bound the calendar
        """
        run_id = uuid.uuid4().hex
        started_at = datetime.utcnow()
        stages: List[StageResult] = []

        with structlog.contextvars.bound_contextvars(run_id=run_id):
            logger.info(
                "Starting metrics run",
                snapshot_horizon=str(self.snapshot_horizon),
                users=inputs.users.height,
                subscriptions=inputs.subscriptions.height,
                workouts=inputs.workouts.height,
            )

            if self.validate:
                self._run_stage(
                    stages, StageName.VALIDATION, validate_inputs,
                    inputs.users, inputs.subscriptions, inputs.workouts, self.plans,
                )

            memberships = self._run_stage(
                stages, StageName.MEMBERSHIPS,
                self.consolidator.consolidate, inputs.subscriptions,
            )
            calendar = self._run_stage(
                stages, StageName.CALENDAR,
                self.calendar_builder.build, memberships,
            )
            cohorts = self._run_stage(
                stages, StageName.COHORTS,
                self.cohort_assigner.assign, memberships, inputs.users,
            )
            churn_monthly = self._run_stage(
                stages, StageName.MONTHLY_MEMBERSHIPS,
                self.point_in_time.aggregate, calendar, memberships, inputs.users,
            )
            activity_monthly = self._run_stage(
                stages, StageName.MONTHLY_ACTIVITY,
                self.activity.aggregate, calendar, memberships, inputs.users, inputs.workouts,
            )
            cohort_facts = self._run_stage(
                stages, StageName.COHORT_PERIODS,
                self.cohort_engine.compute,
                calendar, memberships, cohorts, inputs.workouts, inputs.subscriptions,
            )

            snapshot = MetricsSnapshot(
                run_id=run_id,
                snapshot_horizon=self.snapshot_horizon,
                calendar=calendar,
                memberships=memberships,
                cohorts=cohorts,
                churn_monthly=churn_monthly,
                activity_monthly=activity_monthly,
                cohort_retention=cohort_facts.retention,
                cohort_churn=cohort_facts.churn,
                cohort_engagement=cohort_facts.engagement,
                cohort_ltv=cohort_facts.ltv,
                retention_curve=cohort_facts.retention_curve,
            )

            completed_at = datetime.utcnow()
            result = PipelineResult(
                run_id=run_id,
                snapshot=snapshot,
                started_at=started_at,
                completed_at=completed_at,
                stages=stages,
            )

            logger.info(
                "Metrics run complete",
                duration_seconds=round(result.duration_seconds, 3),
                tables=snapshot.summary(),
            )

        return result

    def refresh(self, store: SnapshotStore, inputs: PipelineInputs) -> PipelineResult:
        """Run and publish; a failed run leaves the store untouched"""
        result = self.run(inputs)
        store.publish(result.snapshot)
        return result
