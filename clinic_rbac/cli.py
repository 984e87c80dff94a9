"""
Interactive CLI for the clinic permission matrix.
Log in with an access key, then evaluate permission checks for that user.
"""

import logging

from clinic_rbac.config import LOG_FORMAT, LOG_LEVEL
from clinic_rbac.database import init_engine
from clinic_rbac.matrix import describe_permission, matrix_frame
from clinic_rbac.models import ResourceContext, parse_module, parse_operation
from clinic_rbac.rbac import (
    authenticate,
    check,
    check_role_assignment,
    get_accessible_modules,
    load_permission_context,
)

HELP = """Commands:
  <operation> <module> [clinic=ID] [owner=ID] [provider=ID] [patient=ID] [assigned=ID,ID]
      e.g. "edit patients clinic=c1 owner=u7"
  create|update|delete-user <role> [new_role]
  matrix [role]      show the permission matrix (default: your role)
  modules            list modules you can access
  quit"""

_RESOURCE_KEYS = {
    "clinic": "clinic_id",
    "owner": "owner_id",
    "provider": "provider_id",
    "patient": "patient_id",
}


def parse_check_command(line: str):
    """Parse '<operation> <module> key=value ...' into (operation, module, resource)."""
    parts = line.split()
    if len(parts) < 2:
        raise ValueError("expected '<operation> <module>'")

    operation, module = parse_operation(parts[0]), parse_module(parts[1])
    if operation is None:
        raise ValueError(f"unknown operation '{parts[0]}'")
    if module is None:
        raise ValueError(f"unknown module '{parts[1]}'")

    fields = {}
    for token in parts[2:]:
        key, sep, value = token.partition("=")
        if not sep:
            raise ValueError(f"expected key=value, got '{token}'")
        if key == "assigned":
            fields["assigned_provider_ids"] = [v for v in value.split(",") if v]
        elif key in _RESOURCE_KEYS:
            fields[_RESOURCE_KEYS[key]] = value
        else:
            raise ValueError(f"unknown resource field '{key}'")

    resource = ResourceContext.from_dict(fields) if fields else None
    return operation, module, resource


def main():
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    print("=== Clinic RBAC: permission console ===\n")

    engine = init_engine()

    # ── Login ────────────────────────────────────────────────────────
    try:
        api_key = input("Enter access key (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not api_key or api_key.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        ctx = load_permission_context(engine, authenticate(engine, api_key))
    except ValueError as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return

    print(f"\n[auth] Logged in as: {ctx.user_id} (role={ctx.role})")
    print(f"[auth] Clinics: {', '.join(sorted(ctx.clinic_ids)) or '(none)'}")
    print(f"[auth] Modules: {', '.join(m.value for m in get_accessible_modules(ctx)) or '(none)'}")
    print("\n" + HELP)

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        if line.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break

        words = line.split()
        command = words[0].lower()

        if command == "help":
            print(HELP)
            continue

        if command == "modules":
            for m in get_accessible_modules(ctx):
                print(f"  {m.value}")
            continue

        if command == "matrix":
            role = words[1] if len(words) > 1 else ctx.role
            df = matrix_frame(role)
            print("(unknown role)" if df.empty else df.to_string())
            continue

        if command in {"create-user", "update-user", "delete-user"}:
            if len(words) < 2:
                print("[ERROR] expected a target role")
                continue
            new_role = words[2] if len(words) > 2 else None
            decision = check_role_assignment(ctx, command.split("-")[0], words[1], new_role)
            print(f"[decision] allowed={decision.allowed}" + (f" ({decision.reason})" if decision.reason else ""))
            continue

        try:
            operation, module, resource = parse_check_command(line)
        except ValueError as e:
            print(f"[ERROR] {e}")
            continue

        decision = check(ctx, module, operation, resource)
        print(f"[matrix] {describe_permission(ctx.role, module, operation)}")
        print(f"[decision] allowed={decision.allowed}" + (f" ({decision.reason})" if decision.reason else ""))


if __name__ == "__main__":
    main()
