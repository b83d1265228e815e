"""
Gym Sample Dataset Generator
Generates users, subscriptions and workouts as raw CSV (text columns, empty
end_date for open memberships) in the layout InputLoader reads.
"""

import random
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from faker import Faker

fake = Faker()
random.seed(42)
np.random.seed(42)
Faker.seed(42)

OUTPUT_DIR = Path(__file__).parent.parent / "data" / "raw"

SNAPSHOT_HORIZON = date(2025, 2, 28)
FIRST_SIGNUP = date(2023, 1, 1)
PLAN_PRICES = {"Basic": 30.0, "Standard": 50.0, "Pro": 80.0}
WORKOUT_TYPES = ["cardio", "strength", "yoga", "hiit", "pilates", "swimming"]


# ==========================================
# USERS
# ==========================================
def generate_users(n=2000, branches=5, output_dir=OUTPUT_DIR):
    print(f"📊 Generating {n:,} users...")

    signup_span = (SNAPSHOT_HORIZON - FIRST_SIGNUP).days
    signup_dates = [
        FIRST_SIGNUP + timedelta(days=int(d))
        for d in np.random.randint(0, signup_span, n)
    ]

    df = pl.DataFrame({
        "user_id": list(range(1, n + 1)),
        "name": [fake.name() for _ in range(n)],
        "email": [fake.email() for _ in range(n)],
        "signup_date": signup_dates,
        "branch_id": np.random.randint(1, branches + 1, n),
        "gender": np.random.choice(["F", "M"], n),
        "age_group": np.random.choice(
            ["18-24", "25-34", "35-44", "45-54", "55+"],
            n, p=[0.20, 0.35, 0.25, 0.12, 0.08],
        ),
    })

    df.write_csv(output_dir / "users.csv")
    print(f"   ✅ users.csv: {n:,} rows")
    return df


# ==========================================
# SUBSCRIPTIONS
# ==========================================
def generate_subscriptions(users_df, output_dir=OUTPUT_DIR):
    """One to three back-to-back terms per user; the last term may stay open"""
    print("📊 Generating subscriptions...")

    rows = []
    for user_id, signup_date in zip(users_df["user_id"].to_list(), users_df["signup_date"].to_list()):
        plan = str(np.random.choice(list(PLAN_PRICES), p=[0.5, 0.3, 0.2]))
        held = {plan}
        start = signup_date
        terms = random.randint(1, 3)

        for term in range(terms):
            if start > SNAPSHOT_HORIZON:
                break
            # Plan changes happen on renewal, never back to an earlier plan
            unused = [p for p in PLAN_PRICES if p not in held]
            if term > 0 and unused and random.random() < 0.2:
                plan = random.choice(unused)
                held.add(plan)

            end = start + timedelta(days=30 * random.randint(1, 6))
            is_last = term == terms - 1
            rows.append({
                "user_id": user_id,
                "plan": plan,
                "start_date": start,
                "end_date": None if is_last and random.random() < 0.4 else end,
                "price": PLAN_PRICES[plan],
            })
            start = end + timedelta(days=random.randint(1, 20))

    df = pl.DataFrame(rows).with_row_index("subscription_id", offset=1)
    df.write_csv(output_dir / "subscriptions.csv")
    print(f"   ✅ subscriptions.csv: {df.height:,} rows")
    return df


# ==========================================
# WORKOUTS
# ==========================================
def generate_workouts(subscriptions_df, output_dir=OUTPUT_DIR):
    """Workouts fall inside membership terms, a few sessions per month"""
    print("📊 Generating workouts...")

    rows = []
    for sub in subscriptions_df.iter_rows(named=True):
        end = min(sub["end_date"] or SNAPSHOT_HORIZON, SNAPSHOT_HORIZON)
        span = (end - sub["start_date"]).days
        if span <= 0:
            continue

        sessions = np.random.poisson(lam=max(span / 30, 1) * 6)
        for offset in np.random.randint(0, span, sessions):
            rows.append({
                "user_id": sub["user_id"],
                "workout_date": sub["start_date"] + timedelta(days=int(offset)),
                "workout_time": f"{random.randint(6, 21):02d}:{random.choice([0, 15, 30, 45]):02d}:00",
                "workout_type": random.choice(WORKOUT_TYPES),
            })

    df = pl.DataFrame(rows).with_row_index("workout_id", offset=1)
    df.write_csv(output_dir / "workouts.csv")
    print(f"   ✅ workouts.csv: {df.height:,} rows")
    return df


# ==========================================
# MAIN
# ==========================================
def main():
    print("=" * 60)
    print("🏋️ Gym Sample Dataset Generator")
    print("=" * 60 + "\n")

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    users_df = generate_users(2000)
    subscriptions_df = generate_subscriptions(users_df)
    generate_workouts(subscriptions_df)

    print("\n" + "=" * 60)
    print("✅ Dataset Generation Complete!")
    print("=" * 60)
    print(f"\n📁 Output: {OUTPUT_DIR}\n")


if __name__ == "__main__":
    main()
