"""Republish appointments left pending after a failed publish."""

import argparse
import asyncio
import sys
from datetime import timedelta

from app.config import settings
from app.core.redis_client import close_redis_connection
from app.database import AsyncSessionLocal, engine
from app.dependencies import get_notification_bus
from app.middleware.logging import configure_logging
from app.services.appointment_service import AppointmentService


async def reconcile(older_than_minutes: int, limit: int) -> int:
    """Run one reconciliation sweep."""
    try:
        async with AsyncSessionLocal() as session:
            service = AppointmentService(session, get_notification_bus())
            return await service.republish_stale_pending(
                timedelta(minutes=older_than_minutes),
                limit=limit,
            )
    finally:
        await engine.dispose()
        await close_redis_connection()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--older-than", type=int, default=settings.stale_pending_minutes)
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    configure_logging(component="reconcile")
    try:
        count = asyncio.run(reconcile(args.older_than, args.limit))
    except Exception as e:
        print(f"✗ Reconciliation failed: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"✓ Republished {count} pending appointment(s)")
