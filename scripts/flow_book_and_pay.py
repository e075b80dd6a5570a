#!/usr/bin/env python3
"""
Booking and payment flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Requires a server running with PAYMENT_GATEWAY=manual and the demo data
from scripts/seed_demo.py.

Usage:
    python scripts/flow_book_and_pay.py --date 2026-12-01
    python scripts/flow_book_and_pay.py --date 2026-12-01 --attendees 2 --referral-code PARTNER10

Flow:
    1. Create booking (as guest)
    2. Open hosted checkout
    3. Settle the checkout (as admin, manual gateway)
    4. Approve booking (as host)
    5. Show ledger rows for host and partner
"""

import argparse
import json
import sys
from pathlib import Path

import httpx

BASE_URL = "http://localhost:8000"
TOKEN_FILE = Path(__file__).parent.parent / ".tokens.json"


def load_demo() -> dict:
    """Load tokens written by seed_demo.py."""
    if not TOKEN_FILE.exists():
        print(f"ERROR: {TOKEN_FILE} not found, run scripts/seed_demo.py first")
        sys.exit(1)
    return json.loads(TOKEN_FILE.read_text())


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"}
    url = f"{BASE_URL}{endpoint}"

    if method == "GET":
        response = httpx.get(url, headers=headers, timeout=10.0, follow_redirects=True)
    elif method == "POST":
        response = httpx.post(url, headers=headers, json=data or {}, timeout=10.0, follow_redirects=True)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    if fields and isinstance(result["data"], dict):
        filtered = {k: result["data"].get(k) for k in fields if k in result["data"]}
        print(json.dumps(filtered, indent=2))
    else:
        print(json.dumps(result["data"], indent=2))
    return True


def main():
    parser = argparse.ArgumentParser(description="Booking and payment flow")
    parser.add_argument("--experience-id", help="Experience UUID (defaults to the seeded one)")
    parser.add_argument("--date", required=True, help="Booking date (YYYY-MM-DD)")
    parser.add_argument("--attendees", type=int, default=1, help="Number of attendees")
    parser.add_argument("--referral-code", help="Partner referral code")
    parser.add_argument("--decline", action="store_true", help="Decline the card instead of authorizing")
    args = parser.parse_args()

    demo = load_demo()
    tokens = demo["tokens"]
    experience_id = args.experience_id or demo["experience_id"]

    # Step 1: Create booking
    print_step(1, "Create booking (as guest)")
    payload = {
        "experience_id": experience_id,
        "booking_date": args.date,
        "attendees_count": args.attendees,
    }
    if args.referral_code:
        payload["referral_code"] = args.referral_code
    booking_result = api_request(tokens["guest"], "POST", "/api/v1/bookings", payload)
    if not print_result(booking_result, ["id", "booking_number", "base_price", "service_fee", "total_amount", "status"]):
        sys.exit(1)

    booking = booking_result["data"]
    booking_id = booking["id"]
    print(f"\nBooking created: {booking['booking_number']}")

    # Step 2: Open checkout
    print_step(2, "Open hosted checkout")
    checkout_result = api_request(tokens["guest"], "POST", f"/api/v1/bookings/{booking_id}/checkout")
    if not print_result(checkout_result):
        sys.exit(1)
    checkout_token = checkout_result["data"]["token"]

    # Step 3: Settle checkout
    print_step(3, "Settle checkout (as admin)")
    settle_result = api_request(
        tokens["admin"],
        "POST",
        f"/api/v1/payments/manual/{checkout_token}/settle",
        {"success": not args.decline},
    )
    if not print_result(settle_result, ["id", "status", "payment_id"]):
        sys.exit(1)

    if args.decline:
        print("\nPayment DECLINED, booking stays pending payment")
        return

    # Step 4: Approve booking
    print_step(4, "Approve booking (as host)")
    approve_result = api_request(tokens["host"], "POST", f"/api/v1/bookings/{booking_id}/approve")
    if not print_result(approve_result, ["id", "status", "commission_amount", "host_earnings", "confirmed_at"]):
        sys.exit(1)
    confirmed = approve_result["data"]
    print("\nBooking CONFIRMED, payment captured")

    # Step 5: Ledger
    print_step(5, "Ledger rows")
    for role in ("host", "partner"):
        rows = api_request(tokens[role], "GET", "/api/v1/payments/transactions")
        booking_rows = [r for r in rows["data"] if r.get("booking_id") == booking_id]
        print(f"{role}: {json.dumps(booking_rows, indent=2)}")

    # Final summary
    print("\n" + "="*60)
    print("FLOW COMPLETE")
    print("="*60)
    print(f"Booking:          {booking['booking_number']}")
    print(f"Total Paid:       {booking['total_amount']:,} cents")
    print(f"Commission:       {confirmed['commission_amount']:,} cents ({confirmed['commission_rate']}%)")
    print(f"Host Earnings:    {confirmed['host_earnings']:,} cents")


if __name__ == "__main__":
    main()
