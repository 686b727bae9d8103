"""
Smoke Test for Subscription Quotas - Listing & Featured Limits

Tests:
1. Seed a basic and a pro agent directly in the database
2. Basic agent can add listings until the plan limit, then gets 403
3. Basic agent cannot feature a listing (403)
4. Pro agent can feature a listing; it shows up in ?featured=1
5. Another agent cannot edit the pro agent's listing (404)

Run: python smoke_test_quotas.py

Requirements:
- Backend running on localhost:8000 (uvicorn marketplace.main:app)
- Same DATABASE_PATH / SECRET_KEY environment as the backend
"""

import sys
import uuid
from typing import Dict, Optional

import requests

from marketplace.auth_context import create_access_token
from marketplace.db import get_db, init_db

BASE_URL = "http://localhost:8000"


class TestResult:
    def __init__(self):
        self.passed = 0
        self.failed = 0

    def add_pass(self, name: str, detail: str = ""):
        self.passed += 1
        print(f"✅ PASS: {name}")
        if detail:
            print(f"  └─ {detail}")

    def add_fail(self, name: str, detail: str = ""):
        self.failed += 1
        print(f"❌ FAIL: {name}")
        if detail:
            print(f"  └─ {detail}")

    def summary(self):
        print("\n" + "="*60)
        print(f"SMOKE TEST SUMMARY: {self.passed} passed, {self.failed} failed")
        print("="*60)
        return self.failed == 0


def seed_agent(plan: str) -> Dict[str, str]:
    """Insert an agent on the given plan and return auth headers"""
    init_db()
    conn = get_db()
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO users (email, role, subscription_type) VALUES (?, 'agent', ?)",
        (f"smoke_{plan}_{uuid.uuid4().hex[:8]}@test.com", plan),
    )
    user_id = cur.lastrowid
    conn.commit()
    conn.close()
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def create_listing(headers: Dict[str, str], title: str, status: str = "available") -> Optional[requests.Response]:
    return requests.post(f"{BASE_URL}/listings", json={"title": title, "status": status, "price": 250000}, headers=headers)


def main():
    result = TestResult()

    print("="*60)
    print("SMOKE TEST: Subscription Quotas")
    print("="*60)
    print()

    basic = seed_agent("basic")
    pro = seed_agent("pro")

    print("📋 TEST 1: Basic plan listing limit")
    print("-"*60)
    plan = requests.get(f"{BASE_URL}/account/plan", headers=basic).json()
    limit = plan["limits"]["max_listings"]
    created = 0
    for index in range(limit):
        resp = create_listing(basic, f"Smoke listing {index}")
        if resp.status_code == 201:
            created += 1
    resp = create_listing(basic, "One too many")
    if created == limit and resp.status_code == 403:
        result.add_pass("Listing limit", f"{created} created, then 403: {resp.json().get('error')}")
    else:
        result.add_fail("Listing limit", f"created={created}, last status={resp.status_code}")
    print()

    print("📋 TEST 2: Basic plan cannot feature")
    print("-"*60)
    listings = requests.get(f"{BASE_URL}/agent/listings", headers=basic).json()["listings"]
    resp = requests.post(f"{BASE_URL}/listings/{listings[0]['property_id']}/feature", headers=basic)
    if resp.status_code == 403:
        result.add_pass("Feature forbidden", resp.json().get("error", ""))
    else:
        result.add_fail("Feature forbidden", f"Expected 403, got {resp.status_code}")
    print()

    print("📋 TEST 3: Pro plan can feature")
    print("-"*60)
    resp = create_listing(pro, "Pro smoke listing")
    property_id = resp.json().get("property_id") if resp.status_code == 201 else None
    resp = requests.post(f"{BASE_URL}/listings/{property_id}/feature", headers=pro)
    featured = requests.get(f"{BASE_URL}/listings", params={"featured": 1, "limit": 100}).json()["listings"]
    if resp.status_code == 200 and any(item["property_id"] == property_id for item in featured):
        result.add_pass("Feature allowed", f"Featured until {resp.json().get('featured_expires_at')}")
    else:
        result.add_fail("Feature allowed", f"status={resp.status_code}")
    print()

    print("📋 TEST 4: Ownership - other agent gets 404")
    print("-"*60)
    resp = requests.put(f"{BASE_URL}/listings/{property_id}", json={"title": "Hijacked"}, headers=basic)
    if resp.status_code == 404:
        result.add_pass("Ownership", "Other agent got 404 (not 403)")
    else:
        result.add_fail("Ownership", f"Expected 404, got {resp.status_code}")
    print()

    success = result.summary()
    return 0 if success else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nTest interrupted by user")
        sys.exit(1)
    except requests.ConnectionError as e:
        print(f"\n\n❌ ERROR: backend not reachable at {BASE_URL}: {e}")
        sys.exit(1)
