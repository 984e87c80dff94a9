#!/usr/bin/env python3
"""
Seed a development database with demo users, clinic memberships and
provider-patient records (visits, appointments, prescriptions).

Usage: DB_URI=... python scripts/seed_demo_data.py
"""

import random
import uuid
from datetime import datetime, timedelta, timezone

from faker import Faker
from sqlalchemy import MetaData, Table

from clinic_rbac.config import ASSIGNMENT_TABLES
from clinic_rbac.database import init_engine
from clinic_rbac.models import Role

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
CLINIC_IDS = ["clinic-A", "clinic-B", "clinic-C"]
NUM_PATIENTS = 40

USERS_PER_CLINIC = {
    Role.REGISTRAR: 2,
    Role.PROVIDER: 3,
    Role.ADMIN: 1,
}

# how many assignment rows per (provider, patient) pair
PER_PAIR = {
    "visits": (0, 3),
    "appointments": (0, 2),
    "prescriptions": (0, 2),
}

# --------------------------------------------------------------------
# SETUP
# --------------------------------------------------------------------
fake = Faker()
random.seed(42)
Faker.seed(42)

engine = init_engine()
metadata = MetaData()

users = Table("users", metadata, autoload_with=engine)
user_clinic_permissions = Table("user_clinic_permissions", metadata, autoload_with=engine)
assignment_tables = {
    name: Table(name, metadata, autoload_with=engine) for name in ASSIGNMENT_TABLES
}


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def random_datetime_within(days_back=365):
    now = datetime.now(timezone.utc)
    delta = timedelta(days=random.randint(0, days_back), seconds=random.randint(0, 86400))
    return now - delta


def fit_row(table, row):
    """Drop keys the reflected table has no column for."""
    return {k: v for k, v in row.items() if k in table.c}


def new_user(role):
    return {
        "id": str(uuid.uuid4()),
        "role": role.value,
        "email": fake.unique.email(),
        "full_name": fake.name(),
        "api_key": f"crbac_{fake.unique.sha1()[:32]}",
        "is_deleted": False,
        "created_at": random_datetime_within(365),
    }


# --------------------------------------------------------------------
# SEED FUNCTIONS
# --------------------------------------------------------------------
def seed_users(conn):
    """Insert users and memberships; return {clinic_id: [provider ids]} and all user rows."""
    user_rows, memberships = [], []
    providers = {c: [] for c in CLINIC_IDS}

    for clinic_id in CLINIC_IDS:
        for role, count in USERS_PER_CLINIC.items():
            for _ in range(count):
                row = new_user(role)
                user_rows.append(row)
                memberships.append({
                    "user_id": row["id"],
                    "clinic_id": clinic_id,
                    "is_clinic_admin": role is Role.ADMIN,
                })
                if role is Role.PROVIDER:
                    providers[clinic_id].append(row["id"])

    for role in (Role.SUPER_ADMIN, Role.SUPER_ADMIN_2, Role.CASEWORKER_1):
        user_rows.append(new_user(role))

    conn.execute(users.insert(), [fit_row(users, r) for r in user_rows])
    conn.execute(
        user_clinic_permissions.insert(),
        [fit_row(user_clinic_permissions, m) for m in memberships],
    )
    return providers, user_rows


def seed_assignments(conn, providers):
    patient_ids = [str(uuid.uuid4()) for _ in range(NUM_PATIENTS)]
    counts = {}

    for name, table in assignment_tables.items():
        lo, hi = PER_PAIR[name]
        rows = []
        for patient_id in patient_ids:
            clinic_id = random.choice(CLINIC_IDS)
            for provider_id in random.sample(providers[clinic_id], k=random.randint(0, 2)):
                for _ in range(random.randint(lo, hi)):
                    rows.append(fit_row(table, {
                        "id": str(uuid.uuid4()),
                        "provider_id": provider_id,
                        "patient_id": patient_id,
                        "clinic_id": clinic_id,
                        "is_deleted": random.random() < 0.05,
                        "created_at": random_datetime_within(365),
                    }))
        if rows:
            conn.execute(table.insert(), rows)
        counts[name] = len(rows)
    return counts


def main():
    with engine.begin() as conn:
        providers, user_rows = seed_users(conn)
        counts = seed_assignments(conn, providers)

    print(f"[seed] Inserted {len(user_rows)} users across {len(CLINIC_IDS)} clinics")
    for name, n in counts.items():
        print(f"[seed] Inserted {n} rows into {name}")

    print("\nSample access keys:")
    seen = set()
    for row in user_rows:
        if row["role"] not in seen:
            seen.add(row["role"])
            print(f"  {row['role']:<15} {row['api_key']}")


if __name__ == "__main__":
    main()
