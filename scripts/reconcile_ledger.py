#!/usr/bin/env python3
"""
Ledger Reconciliation Sweep

Lists allocated gift cards (assigned or delivered) that have no billing
ledger entry. These come from ledger writes that failed after a card was
already issued.

Usage:
    # Report up to 500 unbilled cards (default)
    python3 scripts/reconcile_ledger.py

    # Larger batch, JSON output for piping
    python3 scripts/reconcile_ledger.py --limit 5000 --json

Exit status is 1 when unbilled cards are found, so the script can be
used as a cron check.
"""

import argparse
import asyncio
import json
import logging
import sys

from app.db.session import close_engines, get_read_session_factory
from app.services.reconciliation import ReconciliationService

logger = logging.getLogger("reconcile_ledger")


async def run(limit: int, as_json: bool) -> int:
    factory = get_read_session_factory()
    try:
        async with factory() as session:
            cards = await ReconciliationService(session).find_unbilled_cards(limit)
    finally:
        await close_engines()

    if as_json:
        print(
            json.dumps(
                [
                    {
                        "card_id": str(c.card_id),
                        "brand_id": str(c.brand_id),
                        "denomination": str(c.denomination),
                        "status": c.status.value,
                        "cost_source": c.cost_source.value,
                        "campaign_id": str(c.assigned_campaign_id) if c.assigned_campaign_id else None,
                        "recipient_id": (
                            str(c.assigned_recipient_id) if c.assigned_recipient_id else None
                        ),
                        "assigned_at": c.assigned_at.isoformat() if c.assigned_at else None,
                    }
                    for c in cards
                ],
                indent=2,
            )
        )
    else:
        for c in cards:
            print(
                f"{c.card_id}  brand={c.brand_id}  ${c.denomination}  "
                f"{c.status.value:<9}  campaign={c.assigned_campaign_id}  "
                f"assigned_at={c.assigned_at}"
            )
        print(f"\n{len(cards)} unbilled card(s)")

    return 1 if cards else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Find allocated cards with no ledger entry")
    parser.add_argument("--limit", type=int, default=500, help="Maximum cards to report")
    parser.add_argument("--json", action="store_true", help="Emit JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    sys.exit(asyncio.run(run(args.limit, args.json)))


if __name__ == "__main__":
    main()
