"""
Smoke test for a running Clinic RBAC API server.
Start the server first: python -m clinic_rbac.api.app
Then run this: python scripts/smoke_api.py
"""

import json
import os

import requests

BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")


def show(title, response):
    print("\n" + "=" * 50)
    print(f"TEST: {title}")
    print("=" * 50)
    print(f"Status Code: {response.status_code}")
    print(f"Response: {json.dumps(response.json(), indent=2)}")


def smoke_health():
    response = requests.get(f"{BASE_URL}/health")
    show("Health Check", response)
    return response.status_code == 200


def smoke_login_invalid():
    response = requests.post(f"{BASE_URL}/api/auth/login", json={"api_key": "invalid-key-123"})
    show("Login with Invalid Key", response)
    return response.status_code == 401


def smoke_login(api_key):
    response = requests.post(f"{BASE_URL}/api/auth/login", json={"api_key": api_key})
    show("Login", response)
    if response.status_code == 200:
        return response.json().get("token")
    return None


def smoke_without_token():
    response = requests.get(f"{BASE_URL}/api/permissions/me")
    show("Permissions Without Token", response)
    return response.status_code == 401


def smoke_me(headers):
    response = requests.get(f"{BASE_URL}/api/permissions/me", headers=headers)
    show("My Permissions", response)
    return response.status_code == 200


def smoke_check(headers, module, operation, resource=None):
    response = requests.post(
        f"{BASE_URL}/api/permissions/check",
        headers=headers,
        json={"module": module, "operation": operation, "resource": resource},
    )
    show(f"Check {operation} {module}", response)
    return response.status_code == 200


def smoke_logout(headers):
    response = requests.post(f"{BASE_URL}/api/auth/logout", headers=headers)
    show("Logout", response)
    return response.status_code == 200


def main():
    print("=" * 50)
    print("Clinic RBAC API Smoke Test")
    print("=" * 50)
    print(f"Base URL: {BASE_URL}")
    print("Make sure the API server is running!")
    print()

    api_key = input("Enter an access key for testing: ").strip()
    if not api_key:
        print("ERROR: access key is required")
        return

    results = {}
    try:
        results["Health Check"] = smoke_health()
        results["Login Invalid"] = smoke_login_invalid()
        results["Without Token"] = smoke_without_token()

        token = smoke_login(api_key)
        results["Login Valid"] = token is not None
        if token:
            headers = {"Authorization": f"Bearer {token}"}
            results["My Permissions"] = smoke_me(headers)
            results["Check view patients"] = smoke_check(headers, "patients", "view")
            results["Check delete users"] = smoke_check(headers, "users", "delete")
            results["Logout"] = smoke_logout(headers)
        else:
            print("\nERROR: Could not login. Remaining checks skipped.")
    except requests.RequestException as e:
        print(f"\n\nERROR: {e}")

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)
    for name, ok in results.items():
        print(f"{'✓ PASS' if ok else '✗ FAIL'}: {name}")
    print(f"\nTotal: {sum(results.values())}/{len(results)} checks passed")


if __name__ == "__main__":
    main()
