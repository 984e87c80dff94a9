#!/usr/bin/env python3
"""
Generate access keys for clinic users.
Prints keys plus example SQL that inserts users and their clinic memberships.
"""

import secrets
import string
import uuid


def generate_api_key(prefix="crbac", length=32):
    """Generate a secure random access key."""
    chars = string.ascii_letters + string.digits
    random_part = ''.join(secrets.choice(chars) for _ in range(length))
    return f"{prefix}_{random_part}"


def user_insert_sql(role, clinic_id=None, is_clinic_admin=False):
    """Return INSERT statements for one user and, when given, its clinic membership."""
    user_id = str(uuid.uuid4())
    key = generate_api_key()
    sql = f"""
INSERT INTO users (id, role, api_key, is_deleted)
VALUES ('{user_id}', '{role}', '{key}', false);
"""
    if clinic_id:
        admin_flag = "true" if is_clinic_admin else "false"
        sql += f"""INSERT INTO user_clinic_permissions (user_id, clinic_id, is_clinic_admin)
VALUES ('{user_id}', '{clinic_id}', {admin_flag});
"""
    return sql


if __name__ == "__main__":
    print("=" * 70)
    print("Clinic RBAC Access Key Generator")
    print("=" * 70)
    print()

    print("Single access key:")
    print("-" * 70)
    print(f"  {generate_api_key()}")
    print()

    print("=" * 70)
    print("SQL Insert Example:")
    print("=" * 70)

    print("\n-- Registrar at clinic-A:")
    print(user_insert_sql("registrar", "clinic-A"))
    print("-- Provider at clinic-A:")
    print(user_insert_sql("provider", "clinic-A"))
    print("-- Clinic admin at clinic-A:")
    print(user_insert_sql("admin", "clinic-A", is_clinic_admin=True))
    print("-- Super admin (no clinic membership needed):")
    print(user_insert_sql("super_admin"))

    print("=" * 70)
    print("Note: Run these SQL statements in your database to create users.")
    print("=" * 70)
