"""
Database engine initialisation and schema checks.
"""

import sys
from typing import List

from sqlalchemy import create_engine, inspect, text

from clinic_rbac.config import ASSIGNMENT_TABLES, get_env

# Tables the permission core reads from.
REQUIRED_TABLES = ("users", "user_clinic_permissions") + ASSIGNMENT_TABLES


def init_engine():
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = get_env("DB_URI")
    engine = create_engine(db_uri, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def missing_tables(engine) -> List[str]:
    """Return the required tables that do not exist in the connected database."""
    existing = set(inspect(engine).get_table_names())
    return [t for t in REQUIRED_TABLES if t not in existing]
