"""
Monthly Activity Aggregation

Monthly active users, workout totals and average workouts per active user,
by branch and by the plan the user held on the workout date.
"""

import polars as pl
import structlog

from .common import MONTHLY_KEYS, attach_branch, month_trunc, safe_ratio
from .monthly import count_active_during_month, membership_grid

logger = structlog.get_logger(__name__)

ACTIVITY_MONTHLY_COLUMNS = [
    "month",
    "branch_id",
    "plan",
    "active_users",
    "total_workouts",
    "active_memberships",
    "avg_workouts",
]

_COUNT_COLUMNS = ["active_users", "total_workouts", "active_memberships"]


class ActivityAggregator:
    """
    Computes the monthly activity fact.

    A workout is attributed to every membership whose interval contains the
    workout date. Workouts outside all memberships still count towards
    totals, under a null plan.
    """

    def attribute_workouts(
        self,
        calendar: pl.DataFrame,
        memberships: pl.DataFrame,
        users: pl.DataFrame,
        workouts: pl.DataFrame,
    ) -> pl.DataFrame:
        """Workouts within the calendar, with month, branch and active plan"""
        events = (
            attach_branch(workouts.select(["user_id", "workout_date"]), users, "workouts")
            .with_row_index("_event")
            .with_columns(month_trunc("workout_date").alias("month"))
            .join(calendar.select("month"), on="month", how="inner")
        )

        overlapping = (
            events.select(["_event", "user_id", "workout_date"])
            .join(
                memberships.select(["user_id", "plan", "start_date", "end_date"]),
                on="user_id",
                how="inner",
            )
            .filter(
                (pl.col("workout_date") >= pl.col("start_date"))
                & (pl.col("end_date").is_null() | (pl.col("workout_date") <= pl.col("end_date")))
            )
            .select(["_event", "plan"])
        )

        return events.join(overlapping, on="_event", how="left")

    def aggregate(
        self,
        calendar: pl.DataFrame,
        memberships: pl.DataFrame,
        users: pl.DataFrame,
        workouts: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Args:
            calendar: Calendar months
            memberships: Consolidated membership intervals
            users: User reference data
            workouts: Workout events with user_id and workout_date

        Returns:
            One row per month x branch x plan (plus null-plan rows for
            workouts without a membership), zero-filled, with avg_workouts
            null when there were no active users

        Raises:
            IntegrityError: if a workout or membership references an unknown user
        """
        attributed = self.attribute_workouts(calendar, memberships, users, workouts)
        scoped = attach_branch(memberships, users, "memberships")

        mau = (
            attributed.filter(pl.col("plan").is_not_null())
            .group_by(MONTHLY_KEYS)
            .agg(pl.col("user_id").n_unique().alias("active_users"))
        )
        totals = (
            attributed.group_by(MONTHLY_KEYS)
            .agg(pl.len().alias("total_workouts"))
        )
        during = count_active_during_month(calendar, scoped).rename(
            {"active_during_month": "active_memberships"}
        )

        planned = (
            membership_grid(calendar, scoped)
            .join(mau, on=MONTHLY_KEYS, how="left")
            .join(totals.filter(pl.col("plan").is_not_null()), on=MONTHLY_KEYS, how="left")
            .join(during, on=MONTHLY_KEYS, how="left")
            .with_columns([pl.col(c).fill_null(0).cast(pl.Int64) for c in _COUNT_COLUMNS])
        )
        unplanned = (
            totals.filter(pl.col("plan").is_null())
            .with_columns([
                pl.lit(0, dtype=pl.Int64).alias("active_users"),
                pl.col("total_workouts").cast(pl.Int64),
                pl.lit(0, dtype=pl.Int64).alias("active_memberships"),
            ])
        )

        columns = MONTHLY_KEYS + _COUNT_COLUMNS
        fact = (
            pl.concat([planned.select(columns), unplanned.select(columns)], how="vertical")
            .with_columns(safe_ratio("total_workouts", "active_users").alias("avg_workouts"))
            .select(ACTIVITY_MONTHLY_COLUMNS)
            .sort(MONTHLY_KEYS, nulls_last=True)
        )

        logger.info(
            "Monthly activity fact computed",
            rows=fact.height,
            workouts=int(fact["total_workouts"].sum()),
            unattributed_workouts=int(unplanned["total_workouts"].sum()) if unplanned.height else 0,
        )

        return fact
