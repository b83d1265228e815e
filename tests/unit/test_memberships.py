"""
Unit Tests - Membership Consolidation
"""
from datetime import date

import pytest

from src.metrics.exceptions import InvalidRecordError, ValidationError
from src.metrics.memberships import MembershipConsolidator


class TestMembershipConsolidator:
    """Tests for MembershipConsolidator"""

    def test_open_records_collapse_to_open_interval(self, make_subscriptions, horizon):
        """Two open records for one user and plan form one open interval"""
        subscriptions = make_subscriptions([
            {"user_id": 1, "plan": "Basic", "start_date": date(2023, 1, 1), "end_date": None, "price": 50.0},
            {"user_id": 1, "plan": "Basic", "start_date": date(2023, 3, 1), "end_date": None, "price": 50.0},
        ])

        result = MembershipConsolidator(horizon).consolidate(subscriptions)

        assert result.height == 1
        row = result.row(0, named=True)
        assert row["start_date"] == date(2023, 1, 1)
        assert row["end_date"] is None
        assert row["ltv"] == 100.0

    def test_closed_records_take_latest_end(self, subscriptions_df, horizon, find_row):
        """Closed records keep the earliest start and latest end"""
        result = MembershipConsolidator(horizon).consolidate(subscriptions_df)

        row = find_row(result, user_id=2, plan="Standard")
        assert row["start_date"] == date(2023, 1, 10)
        assert row["end_date"] == date(2023, 3, 5)
        assert row["ltv"] == 100.0

    def test_any_open_record_keeps_interval_open(self, make_subscriptions, horizon):
        """One open record makes the whole interval open"""
        subscriptions = make_subscriptions([
            {"user_id": 1, "plan": "Pro", "start_date": date(2023, 1, 1), "end_date": date(2023, 2, 1), "price": 80.0},
            {"user_id": 1, "plan": "Pro", "start_date": date(2023, 2, 2), "end_date": None, "price": 80.0},
        ])

        result = MembershipConsolidator(horizon).consolidate(subscriptions)

        assert result["end_date"].to_list() == [None]

    def test_end_past_horizon_is_open(self, subscriptions_df, horizon, find_row):
        """An end date after the snapshot horizon counts as still active"""
        result = MembershipConsolidator(horizon).consolidate(subscriptions_df)

        assert find_row(result, user_id=4, plan="Basic")["end_date"] is None

    def test_end_on_horizon_stays_closed(self, make_subscriptions, horizon):
        """An end date on the horizon itself is a real end"""
        subscriptions = make_subscriptions([
            {"user_id": 1, "plan": "Basic", "start_date": date(2023, 1, 1), "end_date": horizon, "price": 30.0},
        ])

        result = MembershipConsolidator(horizon).consolidate(subscriptions)

        assert result["end_date"].to_list() == [horizon]

    def test_one_interval_per_plan(self, make_subscriptions, horizon):
        """Plans are consolidated separately"""
        subscriptions = make_subscriptions([
            {"user_id": 1, "plan": "Basic", "start_date": date(2023, 1, 1), "end_date": date(2023, 2, 28), "price": 30.0},
            {"user_id": 1, "plan": "Pro", "start_date": date(2023, 3, 1), "end_date": None, "price": 80.0},
        ])

        result = MembershipConsolidator(horizon).consolidate(subscriptions)

        assert result["plan"].to_list() == ["Basic", "Pro"]

    def test_negative_price_rejected(self, make_subscriptions, horizon):
        """Negative prices fail with the offending record"""
        subscriptions = make_subscriptions([
            {"user_id": 7, "plan": "Basic", "start_date": date(2023, 1, 1), "end_date": None, "price": -1.0},
        ])

        with pytest.raises(InvalidRecordError) as exc_info:
            MembershipConsolidator(horizon).consolidate(subscriptions)

        assert exc_info.value.rule == "price_non_negative"
        assert exc_info.value.record["user_id"] == 7

    def test_missing_start_rejected(self, make_subscriptions, horizon):
        """A null start date cannot bound an interval"""
        subscriptions = make_subscriptions([
            {"user_id": 1, "plan": "Basic", "start_date": None, "end_date": None, "price": 30.0},
        ])

        with pytest.raises(ValidationError) as exc_info:
            MembershipConsolidator(horizon).consolidate(subscriptions)

        assert exc_info.value.rule == "start_date_not_null"

    def test_end_before_start_rejected(self, make_subscriptions, horizon):
        """An end earlier than the start is rejected with the offending record"""
        subscriptions = make_subscriptions([
            {"user_id": 1, "plan": "Basic", "start_date": date(2023, 1, 5), "end_date": None, "price": 30.0},
            {"user_id": 2, "plan": "Pro", "start_date": date(2023, 4, 1), "end_date": date(2023, 3, 20), "price": 80.0},
        ])

        with pytest.raises(InvalidRecordError) as exc_info:
            MembershipConsolidator(horizon).consolidate(subscriptions)

        assert exc_info.value.rule == "end_not_before_start"
        assert exc_info.value.record["user_id"] == 2

    def test_unknown_plan_rejected(self, make_subscriptions, horizon, plans):
        """Plans outside the configured set are invalid"""
        subscriptions = make_subscriptions([
            {"user_id": 1, "plan": "Platinum", "start_date": date(2023, 1, 1), "end_date": None, "price": 30.0},
        ])

        with pytest.raises(InvalidRecordError) as exc_info:
            MembershipConsolidator(horizon, plans).consolidate(subscriptions)

        assert exc_info.value.rule == "plan_known"

    def test_empty_input(self, make_subscriptions, horizon):
        """No records yields no memberships"""
        result = MembershipConsolidator(horizon).consolidate(make_subscriptions([]))

        assert result.height == 0
        assert result.columns == ["user_id", "plan", "start_date", "end_date", "ltv"]
