"""
Unit Tests - Point-in-Time Membership Aggregation
"""
from datetime import date

import polars as pl
import pytest

from src.metrics.calendar import CalendarBuilder
from src.metrics.exceptions import IntegrityError
from src.metrics.memberships import MembershipConsolidator
from src.metrics.monthly import PointInTimeAggregator


@pytest.fixture
def memberships(subscriptions_df, horizon):
    return MembershipConsolidator(horizon).consolidate(subscriptions_df)


@pytest.fixture
def calendar(memberships, horizon):
    return CalendarBuilder(horizon).build(memberships)


@pytest.fixture
def churn_monthly(calendar, memberships, users_df):
    return PointInTimeAggregator().aggregate(calendar, memberships, users_df)


class TestPointInTimeAggregator:
    """Tests for PointInTimeAggregator"""

    def test_full_grid(self, churn_monthly):
        """Every month appears for every branch/plan pair, zero months included"""
        # 6 months x {(1, Basic), (1, Standard), (2, Pro), (2, Basic)}
        assert churn_monthly.height == 24
        assert churn_monthly.null_count()["active_memberships"][0] == 0

    def test_opening_active_is_strictly_before_month(self, churn_monthly, find_row):
        """A membership starting on the 1st is not open at that month's start"""
        pro_feb = find_row(churn_monthly, month=date(2023, 2, 1), branch_id=2, plan="Pro")
        pro_mar = find_row(churn_monthly, month=date(2023, 3, 1), branch_id=2, plan="Pro")

        assert pro_feb["active_memberships"] == 0
        assert pro_feb["active_during_month"] == 1
        assert pro_mar["active_memberships"] == 1

    def test_opening_active_includes_mid_month_start(self, churn_monthly, find_row):
        """User 1 joined mid-January and is open at the start of February"""
        assert find_row(churn_monthly, month=date(2023, 1, 1), branch_id=1, plan="Basic")["active_memberships"] == 0
        assert find_row(churn_monthly, month=date(2023, 2, 1), branch_id=1, plan="Basic")["active_memberships"] == 1

    def test_lost_in_end_month(self, churn_monthly, find_row):
        """Lost memberships are counted in the month they end"""
        row = find_row(churn_monthly, month=date(2023, 3, 1), branch_id=1, plan="Standard")

        assert row["lost_memberships"] == 1
        assert row["active_memberships"] == 1
        assert row["churn"] == 100.0

    def test_churn_null_without_opening_members(self, churn_monthly, find_row):
        """No opening memberships means undefined churn, not zero"""
        row = find_row(churn_monthly, month=date(2023, 1, 1), branch_id=1, plan="Basic")

        assert row["active_memberships"] == 0
        assert row["lost_memberships"] == 0
        assert row["churn"] is None

    def test_churn_rounding(self, make_subscriptions, make_users, horizon):
        """5 of 100 opening memberships lost is 5.00 percent"""
        rows = [
            {"user_id": i, "plan": "Basic", "start_date": date(2023, 1, 2),
             "end_date": date(2023, 2, 14) if i <= 5 else None, "price": 30.0}
            for i in range(1, 101)
        ]
        memberships = MembershipConsolidator(horizon).consolidate(make_subscriptions(rows))
        users = make_users([{"user_id": i, "branch_id": 1} for i in range(1, 101)])
        calendar = CalendarBuilder(horizon).build(memberships)

        fact = PointInTimeAggregator().aggregate(calendar, memberships, users)
        feb = fact.filter(pl.col("month") == date(2023, 2, 1)).row(0, named=True)

        assert feb["active_memberships"] == 100
        assert feb["lost_memberships"] == 5
        assert feb["churn"] == 5.0

    def test_invariants(self, churn_monthly):
        """Counts are non-negative and lost never exceeds active-during-month"""
        assert churn_monthly.filter(pl.col("active_memberships") < 0).height == 0
        assert churn_monthly.filter(
            pl.col("lost_memberships") > pl.col("active_during_month")
        ).height == 0

    def test_open_past_horizon_is_never_lost(self, churn_monthly):
        """User 4's end beyond the horizon never shows as lost"""
        lost = churn_monthly.filter((pl.col("branch_id") == 2) & (pl.col("plan") == "Basic"))

        assert lost["lost_memberships"].sum() == 0
        assert lost["active_during_month"].to_list() == [0, 0, 1, 1, 1, 1]

    def test_unknown_user(self, calendar, memberships, make_users):
        """Memberships must map to a branch"""
        with pytest.raises(IntegrityError):
            PointInTimeAggregator().aggregate(calendar, memberships, make_users([{"user_id": 1, "branch_id": 1}]))
