"""
Shared Expressions for the Metrics Engine

Month bucketing, cohort-period arithmetic, null-safe ratios and the
user -> branch attribution every monthly and cohort fact relies on.
"""

from typing import Optional

import polars as pl

from .exceptions import IntegrityError

# Grouping keys of the published facts
MONTHLY_KEYS = ["month", "branch_id", "plan"]
COHORT_KEYS = ["cohort", "branch_id", "plan"]
COHORT_PERIOD_KEYS = ["cohort", "branch_id", "plan", "cohort_period"]


def month_trunc(column: str) -> pl.Expr:
    """First day of the month of a date column"""
    return pl.col(column).dt.truncate("1mo")


def cohort_period(reference: str, cohort: str = "cohort") -> pl.Expr:
    """Whole months between a reference month and the cohort month"""
    year_diff = pl.col(reference).dt.year().cast(pl.Int32) - pl.col(cohort).dt.year().cast(pl.Int32)
    month_diff = pl.col(reference).dt.month().cast(pl.Int32) - pl.col(cohort).dt.month().cast(pl.Int32)
    return (year_diff * 12 + month_diff).alias("cohort_period")


def safe_ratio(
    numerator: str,
    denominator: str,
    decimals: int = 2,
    scale: float = 1.0,
) -> pl.Expr:
    """
    Ratio that is null instead of an error when the denominator is zero.

    Args:
        numerator: Numerator column
        denominator: Denominator column
        decimals: Rounding precision
        scale: Multiplier applied before rounding (100 for percentages)
    """
    return (
        pl.when(pl.col(denominator) > 0)
        .then((pl.col(numerator) / pl.col(denominator) * scale).round(decimals))
        .otherwise(None)
    )


def attach_branch(
    frame: pl.DataFrame,
    users: pl.DataFrame,
    stream: str,
) -> pl.DataFrame:
    """
    Join each row to its user's branch.

    Raises:
        IntegrityError: if any row references a user missing from ``users``
    """
    joined = frame.join(
        users.select(["user_id", "branch_id"]),
        on="user_id",
        how="left",
    )
    orphans = joined.filter(pl.col("branch_id").is_null())
    if orphans.height > 0:
        raise IntegrityError(
            f"{orphans.height} {stream} rows reference unknown users",
            rule=f"{stream}_user_exists",
            record=orphans.row(0, named=True),
        )
    return joined


def first_record(frame: pl.DataFrame) -> Optional[dict]:
    """First row of a frame as a dict, or None when empty"""
    if frame.height == 0:
        return None
    return frame.row(0, named=True)
