"""
Membership Consolidation

Collapses raw subscription records into one continuous membership interval
per (user, plan), carrying the accumulated lifetime value of the records.
"""

from datetime import date
from typing import List, Optional

import polars as pl
import structlog

from src.config import get_settings
from .common import first_record
from .exceptions import InvalidRecordError

logger = structlog.get_logger(__name__)
settings = get_settings()

MEMBERSHIP_COLUMNS = ["user_id", "plan", "start_date", "end_date", "ltv"]


class MembershipConsolidator:
    """
    Consolidates subscription records into membership intervals.

    For each (user, plan) group:
    - start_date is the earliest record start
    - end_date is null if any record is still open, otherwise the latest end
    - an end later than the snapshot horizon counts as still open
    - ltv is the sum of record prices

    Example:
        consolidator = MembershipConsolidator(snapshot_horizon=date(2025, 2, 28))
        memberships = consolidator.consolidate(subscriptions_df)
    """

    def __init__(
        self,
        snapshot_horizon: Optional[date] = None,
        plans: Optional[List[str]] = None,
    ):
        self.snapshot_horizon = snapshot_horizon or settings.metrics.snapshot_horizon
        self.plans = plans or list(settings.metrics.plans)

    def _normalize(self, subscriptions: pl.DataFrame) -> pl.DataFrame:
        """Pin column types so all-null columns still compare as dates"""
        return subscriptions.with_columns([
            pl.col("start_date").cast(pl.Date),
            pl.col("end_date").cast(pl.Date),
            pl.col("price").cast(pl.Float64),
        ])

    def _check_records(self, subscriptions: pl.DataFrame) -> None:
        """Reject records that cannot take part in an interval"""
        rules = [
            ("user_id_not_null", pl.col("user_id").is_null(), "Subscription has no user"),
            ("start_date_not_null", pl.col("start_date").is_null(), "Subscription start date is missing"),
            ("price_not_null", pl.col("price").is_null(), "Subscription price is missing"),
            ("price_non_negative", pl.col("price") < 0, "Subscription price is negative"),
            (
                "end_not_before_start",
                pl.col("end_date") < pl.col("start_date"),
                "Subscription ends before it starts",
            ),
            (
                "plan_known",
                pl.col("plan").is_null() | ~pl.col("plan").is_in(self.plans),
                f"Subscription plan is not one of {self.plans}",
            ),
        ]

        for rule, predicate, message in rules:
            invalid = subscriptions.filter(predicate)
            if invalid.height > 0:
                logger.error(
                    "Invalid subscription records",
                    rule=rule,
                    invalid_rows=invalid.height,
                )
                raise InvalidRecordError(message, rule=rule, record=first_record(invalid))

    def consolidate(self, subscriptions: pl.DataFrame) -> pl.DataFrame:
        """
        Build membership intervals from subscription records.

        Args:
            subscriptions: Frame with user_id, plan, start_date, end_date, price

        Returns:
            One row per (user_id, plan) with start_date, end_date, ltv

        Raises:
            InvalidRecordError: on a null start date, a null or negative price,
                an end date before the start date, or an unknown plan
        """
        subscriptions = self._normalize(subscriptions)
        self._check_records(subscriptions)

        grouped = subscriptions.group_by(["user_id", "plan"]).agg([
            pl.col("start_date").min().alias("start_date"),
            pl.col("end_date").max().alias("_latest_end"),
            (pl.col("end_date").null_count() > 0).alias("_has_open_record"),
            pl.col("price").sum().alias("ltv"),
        ])

        memberships = (
            grouped
            .with_columns(
                pl.when(
                    pl.col("_has_open_record")
                    | (pl.col("_latest_end") > self.snapshot_horizon)
                )
                .then(None)
                .otherwise(pl.col("_latest_end"))
                .cast(pl.Date)
                .alias("end_date")
            )
            .select(MEMBERSHIP_COLUMNS)
            .sort(["user_id", "plan"])
        )

        logger.info(
            "Memberships consolidated",
            records=subscriptions.height,
            memberships=memberships.height,
            open_memberships=memberships["end_date"].null_count(),
        )

        return memberships
