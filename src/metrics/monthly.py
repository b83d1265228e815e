"""
Point-in-Time Membership Aggregation

Monthly opening-active, lost and active-during-month membership counts per
branch and plan, and the monthly churn rate derived from them.
"""

import polars as pl
import structlog

from .common import MONTHLY_KEYS, attach_branch, month_trunc, safe_ratio

logger = structlog.get_logger(__name__)

CHURN_MONTHLY_COLUMNS = [
    "month",
    "branch_id",
    "plan",
    "active_memberships",
    "lost_memberships",
    "active_during_month",
    "churn",
]

# Not yet ended at the first day of the month
_NOT_ENDED = pl.col("end_date").is_null() | (pl.col("end_date") >= pl.col("month"))


def membership_grid(calendar: pl.DataFrame, memberships: pl.DataFrame) -> pl.DataFrame:
    """Every calendar month crossed with every (branch, plan) pair seen in memberships"""
    pairs = memberships.select(["branch_id", "plan"]).unique()
    return calendar.select("month").join(pairs, how="cross")


def count_users_per_month(
    calendar: pl.DataFrame,
    memberships: pl.DataFrame,
    predicate: pl.Expr,
    alias: str,
) -> pl.DataFrame:
    """Distinct users per month, branch and plan whose membership satisfies ``predicate``"""
    return (
        calendar.select("month")
        .join(memberships, how="cross")
        .filter(predicate)
        .group_by(MONTHLY_KEYS)
        .agg(pl.col("user_id").n_unique().alias(alias))
    )


def count_active_during_month(calendar: pl.DataFrame, memberships: pl.DataFrame) -> pl.DataFrame:
    """
    Memberships started in or before the month and not ended by its first day.

    Uses ``<=`` on the start month where the opening count uses a strict
    ``<`` on the start date.
    """
    return count_users_per_month(
        calendar,
        memberships,
        (month_trunc("start_date") <= pl.col("month")) & _NOT_ENDED,
        "active_during_month",
    )


class PointInTimeAggregator:
    """
    Computes the monthly membership fact.

    Example:
        aggregator = PointInTimeAggregator()
        churn_monthly = aggregator.aggregate(calendar, memberships, users)
    """

    def aggregate(
        self,
        calendar: pl.DataFrame,
        memberships: pl.DataFrame,
        users: pl.DataFrame,
    ) -> pl.DataFrame:
        """
        Args:
            calendar: Calendar months
            memberships: Consolidated membership intervals
            users: User reference data

        Returns:
            One row per month x branch x plan, zero-filled, with churn
            percentage (null when no membership was open at month start)

        Raises:
            IntegrityError: if a membership references an unknown user
        """
        scoped = attach_branch(memberships, users, "memberships")

        opening = count_users_per_month(
            calendar,
            scoped,
            (pl.col("start_date") < pl.col("month")) & _NOT_ENDED,
            "active_memberships",
        )
        lost = count_users_per_month(
            calendar,
            scoped,
            month_trunc("end_date") == pl.col("month"),
            "lost_memberships",
        )
        during = count_active_during_month(calendar, scoped)

        counts = ["active_memberships", "lost_memberships", "active_during_month"]
        fact = (
            membership_grid(calendar, scoped)
            .join(opening, on=MONTHLY_KEYS, how="left")
            .join(lost, on=MONTHLY_KEYS, how="left")
            .join(during, on=MONTHLY_KEYS, how="left")
            .with_columns([pl.col(c).fill_null(0).cast(pl.Int64) for c in counts])
            .with_columns(
                safe_ratio("lost_memberships", "active_memberships", scale=100.0).alias("churn")
            )
            .select(CHURN_MONTHLY_COLUMNS)
            .sort(MONTHLY_KEYS)
        )

        logger.info(
            "Monthly membership fact computed",
            rows=fact.height,
            months=calendar.height,
            lost_total=int(fact["lost_memberships"].sum()),
        )

        return fact
