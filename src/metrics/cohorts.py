"""
Cohort Assignment

Every user belongs to the month their earliest membership started, with the
branch of the user and the plan of that earliest membership.
"""

import polars as pl
import structlog

from .common import attach_branch, month_trunc

logger = structlog.get_logger(__name__)

COHORT_COLUMNS = ["user_id", "cohort", "branch_id", "plan"]


class CohortAssigner:
    """
    Assigns one cohort per user.

    Ties on the earliest start date across plans resolve to the
    lexicographically smallest plan name, so reruns are stable.
    """

    def assign(self, memberships: pl.DataFrame, users: pl.DataFrame) -> pl.DataFrame:
        """
        Args:
            memberships: Consolidated membership intervals
            users: User reference data with user_id and branch_id

        Returns:
            Frame with user_id, cohort, branch_id, plan; one row per user

        Raises:
            IntegrityError: if a membership references an unknown user
        """
        earliest = (
            memberships
            .sort(["user_id", "start_date", "plan"])
            .unique(subset=["user_id"], keep="first", maintain_order=True)
        )

        cohorts = (
            attach_branch(earliest, users, "memberships")
            .with_columns(month_trunc("start_date").alias("cohort"))
            .select(COHORT_COLUMNS)
        )

        logger.info(
            "Cohorts assigned",
            users=cohorts.height,
            cohorts=cohorts["cohort"].n_unique(),
        )

        return cohorts
