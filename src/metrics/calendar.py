"""
Calendar Dimension

Month buckets spanning the membership data, from the first start month to
the last end month (open memberships run to the snapshot horizon).
"""

from datetime import date
from typing import Optional

import polars as pl
import structlog

from src.config import get_settings
from .exceptions import EmptyInputError

logger = structlog.get_logger(__name__)
settings = get_settings()

CALENDAR_COLUMNS = ["month", "year", "month_name"]


class CalendarBuilder:
    """Builds the ordered month calendar for one run"""

    def __init__(self, snapshot_horizon: Optional[date] = None):
        self.snapshot_horizon = snapshot_horizon or settings.metrics.snapshot_horizon

    def bounds(self, memberships: pl.DataFrame) -> tuple:
        """First and last month covered by the memberships"""
        if memberships.height == 0:
            raise EmptyInputError(
                "Cannot bound the calendar without memberships",
                rule="calendar_has_memberships",
            )

        row = memberships.select([
            pl.col("start_date").dt.truncate("1mo").min().alias("first"),
            pl.col("end_date")
            .fill_null(self.snapshot_horizon)
            .dt.truncate("1mo")
            .max()
            .alias("last"),
        ]).row(0)
        return row[0], row[1]

    def build(self, memberships: pl.DataFrame) -> pl.DataFrame:
        """
        Build the calendar frame.

        Args:
            memberships: Consolidated membership intervals

        Returns:
            Frame with month (first-of-month date), year and month_name,
            one row per month, ascending

        Raises:
            EmptyInputError: when there are no memberships
        """
        first, last = self.bounds(memberships)

        calendar = (
            pl.DataFrame({
                "month": pl.date_range(first, last, interval="1mo", eager=True),
            })
            .with_columns([
                pl.col("month").dt.year().alias("year"),
                pl.col("month").dt.strftime("%B").alias("month_name"),
            ])
            .select(CALENDAR_COLUMNS)
        )

        logger.info(
            "Calendar built",
            first_month=str(first),
            last_month=str(last),
            months=calendar.height,
        )

        return calendar
