#!/usr/bin/env python3
"""
Complete hold and confirm flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_hold_and_confirm.py --artist-token <JWT> --venue-token <JWT> --venue-token <JWT>
    python scripts/flow_hold_and_confirm.py --artist-token "$(python scripts/issue_token.py a@x.io)" \
        --venue-token "$(python scripts/issue_token.py v1@x.io --role venue)" \
        --venue-token "$(python scripts/issue_token.py v2@x.io --role venue)" --decline

Tokens come from scripts/issue_token.py.

Flow:
    1. Artist creates a show request
    2. Each venue bids
    3. Artist requests a hold on the first venue's bid
    4. First venue grants the hold (competitors frozen)
    5. Check hold state
    6. Artist provisionally accepts the held bid
    7. Artist confirms (competitors rejected)
       or, with --decline, turns the held bid down (competitors reopened)
"""

import argparse
import json
import sys
from datetime import date, timedelta

import httpx

BASE_URL = "http://localhost:8000"


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
    parser = argparse.ArgumentParser(description="Complete hold and confirm flow")
    parser.add_argument("--artist-token", required=True, help="Access token of the artist")
    parser.add_argument(
        "--venue-token", action="append", required=True, help="Access token of a venue (repeatable)"
    )
    parser.add_argument("--date", default=str(date.today() + timedelta(days=30)), help="Show date")
    parser.add_argument("--hours", type=int, default=24, help="Hold duration in hours")
    parser.add_argument("--decline", action="store_true", help="Decline the held bid instead of confirming")
    args = parser.parse_args()

    artist = args.artist_token
    venues = args.venue_token

    # Step 1: Create show request
    print_step(1, "Create show request (artist)")
    sr_result = api_request(artist, "POST", "/api/v1/show-requests", {
        "title": "Flow test show",
        "requested_date": args.date,
    })
    if not print_result(sr_result, ["id", "title", "requested_date", "status"]):
        sys.exit(1)
    show_request_id = sr_result["data"]["id"]

    # Step 2: Venues bid
    print_step(2, f"Submit {len(venues)} venue bids")
    bid_ids = []
    for i, venue in enumerate(venues, start=1):
        bid_result = api_request(venue, "POST", f"/api/v1/show-requests/{show_request_id}/bids", {
            "proposed_fee": 100_000 * i,
            "message": f"Venue {i} would love to host",
        })
        if not print_result(bid_result, ["id", "status", "hold_state"]):
            sys.exit(1)
        bid_ids.append(bid_result["data"]["id"])

    # Step 3: Artist requests a hold on the first bid
    print_step(3, "Request hold on the first bid (artist)")
    hold_result = api_request(artist, "POST", "/api/v1/holds", {
        "show_request_id": show_request_id,
        "bid_id": bid_ids[0],
        "duration_hours": args.hours,
        "reason": "Checking travel dates",
    })
    if not print_result(hold_result, ["id", "status", "bid_id", "duration_hours"]):
        sys.exit(1)
    hold_id = hold_result["data"]["id"]

    # Step 4: First venue grants
    print_step(4, "Grant hold (first venue)")
    grant_result = api_request(venues[0], "POST", f"/api/v1/holds/{hold_id}/grant")
    if not print_result(grant_result, ["held_bid_id", "frozen_bid_ids"]):
        sys.exit(1)

    # Step 5: Hold state
    print_step(5, "Hold state")
    state_result = api_request(artist, "GET", f"/api/v1/show-requests/{show_request_id}/hold-state")
    if not print_result(state_result):
        sys.exit(1)

    if args.decline:
        # Step 6: Decline held bid
        print_step(6, "Decline held bid (artist)")
        decline_result = api_request(artist, "POST", f"/api/v1/holds/{hold_id}/decline-bid")
        if not print_result(decline_result, ["reason", "reopened_bid_ids", "rejected_bid_id"]):
            sys.exit(1)
        print("\n" + "="*60)
        print("FLOW COMPLETE (held bid declined, bidding reopened)")
        print("="*60)
        return

    # Step 6: Provisionally accept
    print_step(6, "Provisionally accept held bid (artist)")
    accept_result = api_request(artist, "POST", f"/api/v1/holds/{hold_id}/accept")
    if not print_result(accept_result, ["id", "status", "hold_state", "held_by_hold_id"]):
        sys.exit(1)

    # Step 7: Confirm
    print_step(7, "Confirm (artist)")
    confirm_result = api_request(artist, "POST", f"/api/v1/holds/{hold_id}/confirm")
    if not print_result(confirm_result, ["winning_bid_id", "rejected_bid_ids", "replayed"]):
        sys.exit(1)

    # Final summary
    print("\n" + "="*60)
    print("FULL FLOW COMPLETE")
    print("="*60)
    print(f"Show request:   {show_request_id}")
    print(f"Hold:           {hold_id}")
    print(f"Winning bid:    {confirm_result['data']['winning_bid_id']}")
    print(f"Rejected bids:  {len(confirm_result['data']['rejected_bid_ids'])}")


if __name__ == "__main__":
    main()
