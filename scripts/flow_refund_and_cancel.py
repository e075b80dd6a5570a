#!/usr/bin/env python3
"""
Refund and cancellation flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Requires a server running with PAYMENT_GATEWAY=manual and the demo data
from scripts/seed_demo.py.

Usage:
    python scripts/flow_refund_and_cancel.py --date 2026-12-01
    python scripts/flow_refund_and_cancel.py --date 2026-12-01 --before-approval

Flow:
    1. Create booking (as guest)
    2. Open hosted checkout and settle it (as admin)
    3. Approve booking (as host), unless --before-approval
    4. Cancel booking (as guest): void the hold or refund the charge
    5. Show the guest's ledger rows
"""

import argparse
import json
import sys

from flow_book_and_pay import api_request, load_demo, print_result, print_step


def main():
    parser = argparse.ArgumentParser(description="Refund and cancellation flow")
    parser.add_argument("--experience-id", help="Experience UUID (defaults to the seeded one)")
    parser.add_argument("--date", required=True, help="Booking date (YYYY-MM-DD)")
    parser.add_argument("--referral-code", help="Partner referral code")
    parser.add_argument("--before-approval", action="store_true", help="Cancel while awaiting host approval")
    parser.add_argument("--reason", default="Change of plans", help="Cancellation reason")
    args = parser.parse_args()

    demo = load_demo()
    tokens = demo["tokens"]

    # Step 1: Create booking
    print_step(1, "Create booking (as guest)")
    payload = {
        "experience_id": args.experience_id or demo["experience_id"],
        "booking_date": args.date,
    }
    if args.referral_code:
        payload["referral_code"] = args.referral_code
    booking_result = api_request(tokens["guest"], "POST", "/api/v1/bookings", payload)
    if not print_result(booking_result, ["id", "booking_number", "total_amount", "status"]):
        sys.exit(1)
    booking_id = booking_result["data"]["id"]

    # Step 2: Checkout
    print_step(2, "Open checkout and settle it")
    checkout_result = api_request(tokens["guest"], "POST", f"/api/v1/bookings/{booking_id}/checkout")
    if not print_result(checkout_result):
        sys.exit(1)
    settle_result = api_request(
        tokens["admin"],
        "POST",
        f"/api/v1/payments/manual/{checkout_result['data']['token']}/settle",
    )
    if not print_result(settle_result, ["id", "status"]):
        sys.exit(1)

    # Step 3: Approve
    if not args.before_approval:
        print_step(3, "Approve booking (as host)")
        approve_result = api_request(tokens["host"], "POST", f"/api/v1/bookings/{booking_id}/approve")
        if not print_result(approve_result, ["id", "status", "commission_amount"]):
            sys.exit(1)

    # Step 4: Cancel
    print_step(4, "Cancel booking (as guest)")
    cancel_result = api_request(
        tokens["guest"], "POST", f"/api/v1/bookings/{booking_id}/cancel", {"reason": args.reason}
    )
    if not print_result(cancel_result, ["id", "status", "cancelled_at"]):
        sys.exit(1)

    # Step 5: Ledger
    print_step(5, "Guest ledger rows")
    rows = api_request(tokens["guest"], "GET", "/api/v1/payments/transactions")
    print(json.dumps([r for r in rows["data"] if r.get("booking_id") == booking_id], indent=2))

    print("\n" + "="*60)
    print("VOIDED" if args.before_approval else "REFUNDED")
    print("="*60)


if __name__ == "__main__":
    main()
