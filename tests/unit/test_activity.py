"""
Unit Tests - Monthly Activity Aggregation
"""
from datetime import date

import polars as pl
import pytest

from src.metrics.activity import ActivityAggregator
from src.metrics.calendar import CalendarBuilder
from src.metrics.exceptions import IntegrityError
from src.metrics.memberships import MembershipConsolidator


@pytest.fixture
def memberships(subscriptions_df, horizon):
    return MembershipConsolidator(horizon).consolidate(subscriptions_df)


@pytest.fixture
def calendar(memberships, horizon):
    return CalendarBuilder(horizon).build(memberships)


@pytest.fixture
def activity_monthly(calendar, memberships, users_df, workouts_df):
    return ActivityAggregator().aggregate(calendar, memberships, users_df, workouts_df)


class TestActivityAggregator:
    """Tests for ActivityAggregator"""

    def test_grid_plus_unattributed_bucket(self, activity_monthly):
        """24 branch/plan/month rows plus one null-plan row"""
        assert activity_monthly.height == 25
        assert activity_monthly.filter(pl.col("plan").is_null()).height == 1

    def test_mau_and_average(self, activity_monthly, find_row):
        """Two workouts by one Pro user average 2.0"""
        row = find_row(activity_monthly, month=date(2023, 2, 1), branch_id=2, plan="Pro")

        assert row["active_users"] == 1
        assert row["total_workouts"] == 2
        assert row["avg_workouts"] == 2.0
        assert row["active_memberships"] == 1

    def test_workout_outside_membership(self, activity_monthly):
        """User 2's workout after their membership ended lands in the null-plan bucket"""
        row = activity_monthly.filter(pl.col("plan").is_null()).row(0, named=True)

        assert row["month"] == date(2023, 3, 1)
        assert row["branch_id"] == 1
        assert row["total_workouts"] == 1
        assert row["active_users"] == 0
        assert row["avg_workouts"] is None

    def test_ended_member_not_counted_as_active_user(self, activity_monthly, find_row):
        """March Standard has an active membership but no qualifying workout"""
        row = find_row(activity_monthly, month=date(2023, 3, 1), branch_id=1, plan="Standard")

        assert row["active_users"] == 0
        assert row["total_workouts"] == 0
        assert row["active_memberships"] == 1
        assert row["avg_workouts"] is None

    def test_totals_cover_all_workouts(self, activity_monthly, workouts_df):
        """Every workout in the calendar is counted exactly once"""
        assert activity_monthly["total_workouts"].sum() == workouts_df.height

    def test_workouts_outside_calendar_ignored(self, calendar, memberships, users_df, make_workouts):
        """Workouts after the last calendar month do not contribute"""
        workouts = make_workouts([
            {"user_id": 1, "workout_date": date(2023, 2, 10)},
            {"user_id": 1, "workout_date": date(2024, 1, 10)},
        ])

        fact = ActivityAggregator().aggregate(calendar, memberships, users_df, workouts)

        assert fact["total_workouts"].sum() == 1

    def test_unknown_user(self, calendar, memberships, users_df, make_workouts):
        """Workouts from unknown users are an integrity error"""
        workouts = make_workouts([{"user_id": 99, "workout_date": date(2023, 2, 10)}])

        with pytest.raises(IntegrityError) as exc_info:
            ActivityAggregator().aggregate(calendar, memberships, users_df, workouts)

        assert exc_info.value.rule == "workouts_user_exists"
