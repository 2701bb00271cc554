"""
Auto-confirm SUBMITTED orders that nobody confirmed within AUTO_CONFIRM_AFTER_HOURS (default 24).

Safe to run repeatedly (cron, systemd timer): already confirmed orders are never selected again.
Usage: python -m app.scripts.auto_confirm_orders [--cutoff-hours N]
"""

import argparse
import asyncio
from typing import List, Optional
from uuid import UUID

from app.api.v1.orders.service import auto_confirm_stale_orders
from app.core.logging import configure_logging
from app.db.session import AsyncSessionLocal


async def run_auto_confirm(cutoff_hours: Optional[int] = None) -> List[UUID]:
    async with AsyncSessionLocal() as session:
        confirmed = await auto_confirm_stale_orders(session, cutoff_hours=cutoff_hours)

    if not confirmed:
        print("No orders to auto-confirm.")
    for order_id in confirmed:
        print(f"  auto-confirmed {order_id}")
    print(f"Done. Auto-confirmed {len(confirmed)} order(s).")
    return confirmed


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Auto-confirm stale SUBMITTED orders")
    parser.add_argument("--cutoff-hours", type=int, default=None)
    args = parser.parse_args(argv)
    configure_logging()
    asyncio.run(run_auto_confirm(args.cutoff_hours))


if __name__ == "__main__":
    main()
