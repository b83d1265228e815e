"""
Cohort Period Engine

Cohort-relative facts: per-user retention, churn by cohort period,
engagement, and cumulative lifetime value.

A cohort period is the number of whole months between a reference month
(activity, membership end or payment month) and the user's cohort month.
"""

from dataclasses import dataclass
from typing import List

import polars as pl
import structlog

from .common import (
    COHORT_KEYS,
    COHORT_PERIOD_KEYS,
    cohort_period,
    first_record,
    month_trunc,
    safe_ratio,
)
from .exceptions import IntegrityError

logger = structlog.get_logger(__name__)

RETENTION_COLUMNS = ["user_id", "plan", "branch_id", "cohort", "activity_month", "cohort_period"]
COHORT_CHURN_COLUMNS = COHORT_PERIOD_KEYS + ["users_churned", "active_users", "churn"]
ENGAGEMENT_COLUMNS = COHORT_PERIOD_KEYS + [
    "total_workouts",
    "active_users_in_period",
    "initial_users",
    "avg_workouts_per_active_user",
    "avg_workouts_per_initial_user",
]
LTV_COLUMNS = COHORT_PERIOD_KEYS + [
    "total_revenue_period",
    "active_users",
    "cumulative_cohort_revenue",
    "average_revenue_per_user",
]
RETENTION_CURVE_COLUMNS = COHORT_PERIOD_KEYS + ["retained_users", "initial_users", "retention_rate"]


@dataclass(frozen=True)
class CohortFacts:
    """Cohort-relative outputs of one run"""
    retention: pl.DataFrame
    churn: pl.DataFrame
    engagement: pl.DataFrame
    ltv: pl.DataFrame
    retention_curve: pl.DataFrame
    active_cohort_sizes: pl.DataFrame


def running_total(
    frame: pl.DataFrame,
    value: str,
    partition: List[str],
    order: str,
    alias: str,
) -> pl.DataFrame:
    """
    Ordered prefix sum of ``value`` within each partition.

    Rows are stably sorted by partition then ``order`` before the scan, so
    absent periods are skipped without resetting the total.
    """
    return (
        frame.sort(partition + [order], maintain_order=True)
        .with_columns(pl.col(value).cum_sum().over(partition).alias(alias))
    )


def attach_cohort(frame: pl.DataFrame, cohorts: pl.DataFrame, stream: str) -> pl.DataFrame:
    """
    Join rows to their user's cohort, branch and plan.

    Raises:
        IntegrityError: if a row belongs to a user without a cohort
    """
    joined = frame.join(cohorts, on="user_id", how="left")
    orphans = joined.filter(pl.col("cohort").is_null())
    if orphans.height > 0:
        raise IntegrityError(
            f"{orphans.height} {stream} rows belong to users without a membership",
            rule=f"{stream}_user_has_cohort",
            record=first_record(orphans),
        )
    return joined


class CohortPeriodEngine:
    """
    Computes every cohort-period fact from the upstream stage outputs.

    Example:
        engine = CohortPeriodEngine()
        facts = engine.compute(calendar, memberships, cohorts, workouts, subscriptions)
    """

    def activity_by_month(self, workouts: pl.DataFrame) -> pl.DataFrame:
        """Workouts per user per activity month"""
        return (
            workouts
            .with_columns(month_trunc("workout_date").alias("activity_month"))
            .group_by(["user_id", "activity_month"])
            .agg(pl.len().cast(pl.Int64).alias("workouts_done"))
        )

    def _activity_periods(self, activity: pl.DataFrame, cohorts: pl.DataFrame) -> pl.DataFrame:
        """User-month activity with cohort period; pre-cohort activity dropped"""
        periods = (
            attach_cohort(activity, cohorts, "workouts")
            .with_columns(cohort_period("activity_month"))
        )

        early = periods.filter(pl.col("cohort_period") < 0)
        if early.height > 0:
            logger.warning(
                "Activity before cohort month excluded",
                rows=early.height,
                users=early["user_id"].n_unique(),
            )

        return periods.filter(pl.col("cohort_period") >= 0)

    def retention(self, activity_periods: pl.DataFrame) -> pl.DataFrame:
        """One row per retained user and activity month"""
        return (
            activity_periods
            .select(RETENTION_COLUMNS)
            .sort(["cohort", "branch_id", "plan", "user_id", "activity_month"])
        )

    def initial_cohort_sizes(self, cohorts: pl.DataFrame) -> pl.DataFrame:
        """Users assigned to each cohort"""
        return cohorts.group_by(COHORT_KEYS).agg(
            pl.col("user_id").n_unique().cast(pl.Int64).alias("initial_users")
        )

    def active_cohort_sizes(
        self,
        calendar: pl.DataFrame,
        memberships: pl.DataFrame,
        cohorts: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Distinct users of each cohort holding a membership during the
        calendar month at each cohort period.
        """
        return (
            cohorts
            .join(calendar.select("month"), how="cross")
            .filter(pl.col("month") >= pl.col("cohort"))
            .join(
                memberships.select(["user_id", "start_date", "end_date"]),
                on="user_id",
                how="inner",
            )
            .filter(
                (month_trunc("start_date") <= pl.col("month"))
                & (pl.col("end_date").is_null() | (month_trunc("end_date") >= pl.col("month")))
            )
            .with_columns(cohort_period("month"))
            .group_by(COHORT_PERIOD_KEYS)
            .agg(pl.col("user_id").n_unique().cast(pl.Int64).alias("active_users"))
            .sort(COHORT_PERIOD_KEYS)
        )

    def churn(
        self,
        memberships: pl.DataFrame,
        cohorts: pl.DataFrame,
        active_sizes: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Users whose membership ended, per cohort period, against the active
        cohort size at that period.

        Raises:
            IntegrityError: on a negative churn period or a churned period
                without an active cohort size
        """
        churned = (
            attach_cohort(
                memberships
                .filter(pl.col("end_date").is_not_null())
                .select(["user_id", month_trunc("end_date").alias("end_month")]),
                cohorts,
                "memberships",
            )
            .with_columns(cohort_period("end_month"))
        )

        negative = churned.filter(pl.col("cohort_period") < 0)
        if negative.height > 0:
            raise IntegrityError(
                "Membership ended before its user's cohort month",
                rule="churn_period_non_negative",
                record=first_record(negative),
            )

        joined = (
            churned
            .group_by(COHORT_PERIOD_KEYS)
            .agg(pl.col("user_id").n_unique().cast(pl.Int64).alias("users_churned"))
            .join(active_sizes, on=COHORT_PERIOD_KEYS, how="left")
        )

        missing = joined.filter(pl.col("active_users").is_null())
        if missing.height > 0:
            raise IntegrityError(
                "Churned cohort period has no active cohort size",
                rule="churn_denominator_present",
                record=first_record(missing),
            )

        return (
            joined
            .with_columns(safe_ratio("users_churned", "active_users", scale=100.0).alias("churn"))
            .select(COHORT_CHURN_COLUMNS)
            .sort(COHORT_PERIOD_KEYS)
        )

    def engagement(self, activity_periods: pl.DataFrame, initial_sizes: pl.DataFrame) -> pl.DataFrame:
        """Workouts and active users per period, relative to active and initial users"""
        return (
            activity_periods
            .group_by(COHORT_PERIOD_KEYS)
            .agg([
                pl.col("workouts_done").sum().cast(pl.Int64).alias("total_workouts"),
                pl.col("user_id").n_unique().cast(pl.Int64).alias("active_users_in_period"),
            ])
            .join(initial_sizes, on=COHORT_KEYS, how="inner")
            .with_columns([
                safe_ratio("total_workouts", "active_users_in_period").alias("avg_workouts_per_active_user"),
                safe_ratio("total_workouts", "initial_users").alias("avg_workouts_per_initial_user"),
            ])
            .select(ENGAGEMENT_COLUMNS)
            .sort(COHORT_PERIOD_KEYS)
        )

    def ltv(self, subscriptions: pl.DataFrame, cohorts: pl.DataFrame) -> pl.DataFrame:
        """
        Revenue per cohort period and its running total.

        Payments are the summed prices of a user's subscriptions starting in
        the same month, independent of membership boundaries. Only payments
        at or after the cohort month count.
        """
        payments = (
            subscriptions
            .with_columns([
                month_trunc("start_date").alias("payment_month"),
                pl.col("price").cast(pl.Float64),
            ])
            .group_by(["user_id", "payment_month"])
            .agg(pl.col("price").sum().alias("payment"))
        )

        per_period = (
            attach_cohort(payments, cohorts, "subscriptions")
            .filter(pl.col("payment_month") >= pl.col("cohort"))
            .with_columns(cohort_period("payment_month"))
            .group_by(COHORT_PERIOD_KEYS)
            .agg([
                pl.col("payment").sum().alias("total_revenue_period"),
                pl.col("user_id").n_unique().cast(pl.Int64).alias("active_users"),
            ])
        )

        return (
            running_total(
                per_period,
                value="total_revenue_period",
                partition=COHORT_KEYS,
                order="cohort_period",
                alias="cumulative_cohort_revenue",
            )
            .with_columns(
                safe_ratio("total_revenue_period", "active_users", decimals=0)
                .alias("average_revenue_per_user")
            )
            .select(LTV_COLUMNS)
        )

    def retention_curve(self, retention: pl.DataFrame, initial_sizes: pl.DataFrame) -> pl.DataFrame:
        """Share of each cohort active in each period"""
        return (
            retention
            .group_by(COHORT_PERIOD_KEYS)
            .agg(pl.col("user_id").n_unique().cast(pl.Int64).alias("retained_users"))
            .join(initial_sizes, on=COHORT_KEYS, how="inner")
            .with_columns(
                safe_ratio("retained_users", "initial_users", scale=100.0).alias("retention_rate")
            )
            .select(RETENTION_CURVE_COLUMNS)
            .sort(COHORT_PERIOD_KEYS)
        )

    def compute(
        self,
        calendar: pl.DataFrame,
        memberships: pl.DataFrame,
        cohorts: pl.DataFrame,
        workouts: pl.DataFrame,
        subscriptions: pl.DataFrame,
    ) -> CohortFacts:
        """
        Args:
            calendar: Calendar months
            memberships: Consolidated membership intervals
            cohorts: One cohort assignment per user
            workouts: Workout events
            subscriptions: Raw subscription records (payments)

        Returns:
            CohortFacts with every cohort-period fact

        Raises:
            IntegrityError: on activity or payments from users without a
                cohort, or inconsistent churn periods
        """
        activity_periods = self._activity_periods(self.activity_by_month(workouts), cohorts)
        initial_sizes = self.initial_cohort_sizes(cohorts)
        active_sizes = self.active_cohort_sizes(calendar, memberships, cohorts)

        retention = self.retention(activity_periods)
        facts = CohortFacts(
            retention=retention,
            churn=self.churn(memberships, cohorts, active_sizes),
            engagement=self.engagement(activity_periods, initial_sizes),
            ltv=self.ltv(subscriptions, cohorts),
            retention_curve=self.retention_curve(retention, initial_sizes),
            active_cohort_sizes=active_sizes,
        )

        logger.info(
            "Cohort period facts computed",
            cohorts=initial_sizes.height,
            retention_rows=facts.retention.height,
            churn_rows=facts.churn.height,
            engagement_rows=facts.engagement.height,
            ltv_rows=facts.ltv.height,
        )

        return facts
