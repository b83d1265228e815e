"""
Test Suite Configuration

Four users across two branches:

    user 1  branch 1  Basic     2023-01-15 -> open          $30
    user 2  branch 1  Standard  2023-01-10 -> 2023-02-20    $50
                      Standard  2023-02-10 -> 2023-03-05    $50
    user 3  branch 2  Pro       2023-02-01 -> 2023-04-15    $80
    user 4  branch 2  Basic     2023-03-01 -> 2023-12-31    $30 (past horizon)

Snapshot horizon 2023-06-30, so the calendar runs January to June 2023.
"""
from datetime import date, time
from typing import Any, Callable, Dict, List

import polars as pl
import pytest

from src.config import Settings
from src.ingestion.loader import SCHEMAS
from src.metrics.pipeline import PipelineInputs

HORIZON = date(2023, 6, 30)
PLANS = ["Basic", "Standard", "Pro"]


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def horizon() -> date:
    return HORIZON


@pytest.fixture
def plans() -> List[str]:
    return list(PLANS)


@pytest.fixture
def make_users() -> Callable[[List[Dict[str, Any]]], pl.DataFrame]:
    """Build a users frame from row dicts"""
    def make(rows: List[Dict[str, Any]]) -> pl.DataFrame:
        schema = {k: SCHEMAS["users"][k] for k in ["user_id", "branch_id"]}
        return pl.DataFrame(rows, schema=schema)
    return make


@pytest.fixture
def make_subscriptions() -> Callable[[List[Dict[str, Any]]], pl.DataFrame]:
    """Build a subscriptions frame from row dicts"""
    def make(rows: List[Dict[str, Any]]) -> pl.DataFrame:
        schema = {k: SCHEMAS["subscriptions"][k] for k in ["user_id", "plan", "start_date", "end_date", "price"]}
        return pl.DataFrame(rows, schema=schema)
    return make


@pytest.fixture
def make_workouts() -> Callable[[List[Dict[str, Any]]], pl.DataFrame]:
    """Build a workouts frame from row dicts"""
    def make(rows: List[Dict[str, Any]]) -> pl.DataFrame:
        schema = {k: SCHEMAS["workouts"][k] for k in ["user_id", "workout_date"]}
        return pl.DataFrame(rows, schema=schema)
    return make


@pytest.fixture
def users_df() -> pl.DataFrame:
    """Create sample users DataFrame for testing"""
    return pl.DataFrame({
        "user_id": [1, 2, 3, 4],
        "name": ["Ana Silva", "Ben Okafor", "Chen Wei", "Dara Quinn"],
        "email": ["ana@example.com", "ben@example.com", "chen@example.com", "dara@example.com"],
        "signup_date": [date(2023, 1, 15), date(2023, 1, 10), date(2023, 2, 1), date(2023, 3, 1)],
        "branch_id": [1, 1, 2, 2],
        "gender": ["F", "M", "M", "F"],
        "age_group": ["25-34", "35-44", "18-24", "45-54"],
    }, schema=SCHEMAS["users"])


@pytest.fixture
def subscriptions_df() -> pl.DataFrame:
    """Create sample subscriptions DataFrame for testing"""
    return pl.DataFrame({
        "subscription_id": [1, 2, 3, 4, 5],
        "user_id": [1, 2, 2, 3, 4],
        "plan": ["Basic", "Standard", "Standard", "Pro", "Basic"],
        "start_date": [
            date(2023, 1, 15),
            date(2023, 1, 10),
            date(2023, 2, 10),
            date(2023, 2, 1),
            date(2023, 3, 1),
        ],
        "end_date": [
            None,
            date(2023, 2, 20),
            date(2023, 3, 5),
            date(2023, 4, 15),
            date(2023, 12, 31),
        ],
        "price": [30.0, 50.0, 50.0, 80.0, 30.0],
    }, schema=SCHEMAS["subscriptions"])


@pytest.fixture
def workouts_df() -> pl.DataFrame:
    """Create sample workouts DataFrame for testing"""
    return pl.DataFrame({
        "workout_id": [1, 2, 3, 4, 5, 6, 7],
        "user_id": [1, 1, 2, 2, 2, 3, 3],
        "workout_date": [
            date(2023, 2, 10),
            date(2023, 3, 5),
            date(2023, 1, 20),
            date(2023, 2, 15),
            date(2023, 3, 10),
            date(2023, 2, 5),
            date(2023, 2, 6),
        ],
        "workout_time": [time(7, 30), time(18, 0), time(12, 15), time(6, 45), time(19, 30), time(8, 0), time(8, 5)],
        "workout_type": ["cardio", "strength", "yoga", "cardio", "hiit", "strength", "strength"],
    }, schema=SCHEMAS["workouts"])


@pytest.fixture
def sample_inputs(users_df, subscriptions_df, workouts_df) -> PipelineInputs:
    return PipelineInputs(users=users_df, subscriptions=subscriptions_df, workouts=workouts_df)


@pytest.fixture
def find_row() -> Callable[..., Dict[str, Any]]:
    """Return the single row of a frame matching every key=value pair"""
    def find(df: pl.DataFrame, **keys: Any) -> Dict[str, Any]:
        matches = df.filter(pl.all_horizontal([pl.col(k) == v for k, v in keys.items()]))
        assert matches.height == 1, f"expected one row for {keys}, found {matches.height}"
        return matches.row(0, named=True)
    return find
