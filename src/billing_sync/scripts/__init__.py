#!/usr/bin/env python3
"""CLI command for manual billing resync.

Webhook deliveries whose resync failed are acknowledged to Stripe anyway,
so Stripe will not retry them. This script is the recovery path: it runs
the same full resync the webhook runs, for the customers an operator names.

Examples:
    # Resync two customers
    python -m billing_sync.scripts --customers cus_A cus_B

    # Output JSON report
    python -m billing_sync.scripts --customers cus_A --json

    # Show the stored account state without resyncing
    python -m billing_sync.scripts --customers cus_A --state-only

Environment Variables:
    STRIPE_SECRET_KEY: Stripe API key
    SUPABASE_URL: Supabase project URL
    SUPABASE_SERVICE_KEY: Supabase service role key
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from loguru import logger

from billing_sync.app import setup_logging
from billing_sync.services.errors import BillingSyncError
from billing_sync.services.reconciler import Reconciler, get_reconciler


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Resync local billing state from Stripe",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --customers cus_A cus_B            # Resync customers
  %(prog)s --customers cus_A --json           # Output JSON report
  %(prog)s --customers cus_A --state-only     # Show stored state only
        """,
    )

    parser.add_argument(
        "--customers",
        nargs="+",
        metavar="CUSTOMER_ID",
        required=True,
        help="Stripe customer IDs to resync (space-separated)",
    )

    parser.add_argument(
        "--state-only",
        action="store_true",
        help="Print the stored account state without contacting Stripe",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output report as JSON",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser.parse_args(argv)


async def resync_customers(
    reconciler: Reconciler,
    customer_ids: list[str],
    state_only: bool = False,
) -> list[dict[str, Any]]:
    """Resync each customer in turn and collect a report entry per customer.

    A failure for one customer does not stop the others.
    """
    report = []
    for customer_id in customer_ids:
        entry: dict[str, Any] = {"customer_id": customer_id, "ok": False}
        try:
            if not state_only:
                result = await reconciler.reconcile(customer_id)
                entry.update(result.to_dict())
                entry["ok"] = result.ok
            state = await reconciler.store.get_account_state(customer_id)
            entry["account_state"] = state.to_dict()
            if state_only:
                entry["ok"] = True
        except BillingSyncError as e:
            logger.error("Resync failed for {}: {}", customer_id, e)
            entry["errors"] = [str(e)]
        report.append(entry)
    return report


def print_report(report: list[dict[str, Any]]) -> None:
    print("\n" + "=" * 60)
    print("Billing Resync Report")
    print("=" * 60)
    for entry in report:
        marker = "OK  " if entry["ok"] else "FAIL"
        state = entry.get("account_state") or {}
        print(
            f"[{marker}] {entry['customer_id']:<24} "
            f"status={state.get('subscription_status')} plan={state.get('plan')}"
        )
        for error in entry.get("errors") or []:
            print(f"       - {error}")
    print("=" * 60)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    setup_logging("DEBUG" if args.verbose else "INFO")

    try:
        reconciler = get_reconciler()
    except BillingSyncError as e:
        logger.error("Failed to initialize services: {}", e)
        return 1

    try:
        report = asyncio.run(resync_customers(reconciler, args.customers, args.state_only))
    except KeyboardInterrupt:
        logger.info("Resync interrupted by user")
        return 130

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print_report(report)

    return 0 if all(entry["ok"] for entry in report) else 1


if __name__ == "__main__":
    sys.exit(main())
