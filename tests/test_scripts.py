"""
Tests for the helper scripts under scripts/.
"""

import importlib.util
from pathlib import Path

from dotenv import dotenv_values

SCRIPTS = Path(__file__).resolve().parent.parent / "scripts"


def load_script(name):
    spec = importlib.util.spec_from_file_location(name, SCRIPTS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_write_secret_creates_env_file(tmp_path):
    mod = load_script("generate_secret_key")
    env = tmp_path / ".env"
    secret = mod.new_secret()

    assert len(secret) == 64
    assert mod.write_secret(secret, str(env)) == str(env)
    assert dotenv_values(env)["JWT_SECRET_KEY"] == secret


def test_write_secret_rotates_existing_key(tmp_path):
    mod = load_script("generate_secret_key")
    env = tmp_path / ".env"
    env.write_text("DB_URI=sqlite:///x.db\nJWT_SECRET_KEY=old\n")

    mod.write_secret("new", str(env))
    values = dotenv_values(env)
    assert values["JWT_SECRET_KEY"] == "new"
    assert values["DB_URI"] == "sqlite:///x.db"


def test_user_insert_sql_includes_membership():
    mod = load_script("generate_api_key")
    sql = mod.user_insert_sql("admin", "clinic-A", is_clinic_admin=True)
    assert "'admin'" in sql
    assert "INSERT INTO user_clinic_permissions" in sql
    assert "'clinic-A', true" in sql
    assert "user_clinic_permissions" not in mod.user_insert_sql("super_admin")
