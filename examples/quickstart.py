#!/usr/bin/env python3
"""
SchoolGate Quickstart — the whole session lifecycle in one script.

Registers a school admin → logs in → onboards a school → reads /me →
lists schools (scoped) → rotates the refresh token → logs out.
Run with: python examples/quickstart.py

Requires: pip install httpx
Backend must be running: http://localhost:8000
"""

import sys
import uuid

import httpx

BASE = "http://localhost:8000/api/v1"


def main():
    run_id = uuid.uuid4().hex[:6]
    client = httpx.Client(base_url=BASE, timeout=10)

    # ── Health check ──────────────────────────────────────────────
    print("Checking backend health...")
    try:
        resp = client.get("/health")
    except httpx.ConnectError:
        print(f"Backend not reachable at {BASE}")
        print("Start it with:  cd packages/backend && uvicorn schoolgate.main:app --reload --port 8000")
        sys.exit(1)
    health = resp.json()
    print(f"  Database: {'✓' if health['database'] == 'ok' else '✗'}")

    # ── Register ──────────────────────────────────────────────────
    email = f"principal-{run_id}@school.org"
    password = "quickstart-pw"
    print("\n1. Registering a school admin...")
    resp = client.post("/auth/register", json={
        "name": "Quickstart Principal",
        "email": email,
        "password": password,
        "role": "school_admin",
    })
    assert resp.status_code == 201, f"Failed: {resp.text}"
    print(f"   Identity: {resp.json()['identity']['email']} (no school yet)")

    # ── Login ─────────────────────────────────────────────────────
    print("\n2. Logging in...")
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    session = resp.json()
    headers = {"Authorization": f"Bearer {session['access_token']}"}
    print(f"   Access token expires: {session['access_expires_at']}")

    # ── Onboarding ────────────────────────────────────────────────
    print("\n3. Onboarding a school...")
    resp = client.post("/auth/onboarding", headers=headers, json={
        "school_name": f"Quickstart School {run_id}",
        "board": "CBSE",
        "admin_name": "Quickstart Principal",
        "admin_phone": "+91 90000 00000",
    })
    assert resp.status_code == 200, f"Failed: {resp.text}"
    tenant_id = resp.json()["identity"]["tenant_id"]
    print(f"   Tenant: {tenant_id[:8]}...")

    # ── Me ────────────────────────────────────────────────────────
    resp = client.get("/auth/me", headers=headers)
    me = resp.json()
    print(f"\n4. /me → {me['name']} ({me['role']}) at {me['tenant']['name']}")

    # ── Scoped listing ────────────────────────────────────────────
    print("\n5. Listing schools (narrowed to our own)...")
    resp = client.get("/tenants", headers=headers)
    for school in resp.json():
        print(f"   - {school['name']} [{school['status']}]")

    resp = client.get(f"/tenants/{uuid.uuid4()}", headers=headers)
    print(f"   Another school's id → {resp.status_code} {resp.json()['error']['kind']}")

    # ── Refresh rotation ──────────────────────────────────────────
    print("\n6. Rotating the refresh token...")
    old_refresh = session["refresh_token"]
    resp = client.post("/auth/refresh", json={"refresh_token": old_refresh})
    assert resp.status_code == 200, f"Failed: {resp.text}"
    headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
    replay = client.post("/auth/refresh", json={"refresh_token": old_refresh})
    print(f"   Replaying the old refresh token → {replay.status_code} {replay.json()['error']['kind']}")

    # ── Logout ────────────────────────────────────────────────────
    print("\n7. Logging out...")
    resp = client.post("/auth/logout", headers=headers)
    assert resp.status_code == 200, f"Failed: {resp.text}"
    print("   Stored refresh token cleared.")

    print("\n✓ Quickstart complete!")


if __name__ == "__main__":
    main()
