"""Gym retention, churn, engagement and LTV metrics."""
