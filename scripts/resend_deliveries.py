#!/usr/bin/env python3
"""
Resend Deliveries Script

Resumes delivery and accounting for payments that settled without a
confirmed delivery email (for example after a Resend timeout).

Usage:
    python resend_deliveries.py --payment-id 123e4567-e89b-12d3-a456-426614174000
    python resend_deliveries.py --all
    python resend_deliveries.py --all --limit 20 --dry-run
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List
from uuid import UUID

import requests

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import SettlementError
from repositories.payment_repository import list_undelivered_payments
from services.settlement_service import SettlementResult, resend_delivery


def resend_many(payment_ids: List[UUID]) -> List[SettlementResult]:
    """Resend each payment in turn; one failure does not stop the rest."""

    results: List[SettlementResult] = []
    for payment_id in payment_ids:
        try:
            result = resend_delivery(payment_id)
        except SettlementError as e:
            print(f"  {payment_id}: FAILED {e.reason}")
            continue
        except (RuntimeError, requests.RequestException) as e:
            print(f"  {payment_id}: FAILED {type(e).__name__}: {e}")
            continue
        results.append(result)
        pending = f" (pending: {', '.join(result.pending)})" if result.pending else ""
        print(f"  {payment_id}: {result.outcome.value}{pending}")
    return results


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Resend product delivery emails for settled payments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--payment-id", "-p", type=UUID, help="Resend a single payment")
    target.add_argument(
        "--all",
        action="store_true",
        help="Resend every completed payment whose email was never confirmed",
    )

    parser.add_argument("--limit", type=int, default=100, help="Maximum payments to process with --all")
    parser.add_argument("--dry-run", action="store_true", help="List payments without resending")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.payment_id:
            payment_ids = [args.payment_id]
        else:
            payment_ids = [p.payment_id for p in list_undelivered_payments(limit=args.limit)]

        if not payment_ids:
            print("No undelivered payments found")
            return 0

        print(f"Payments to resend: {len(payment_ids)}")
        if args.dry_run:
            for payment_id in payment_ids:
                print(f"  {payment_id}")
            return 0

        results = resend_many(payment_ids)

        print()
        print("=" * 60)
        print("RESEND SUMMARY")
        print("=" * 60)
        print(f"Processed:        {len(results)} of {len(payment_ids)}")
        print(f"Fully delivered:  {sum(1 for r in results if r.success and not r.pending)}")
        print(f"Still pending:    {sum(1 for r in results if r.pending)}")
        print("=" * 60)

        return 0 if len(results) == len(payment_ids) else 1

    except KeyboardInterrupt:
        print("\n\nResend interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
