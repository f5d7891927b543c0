#!/usr/bin/env python3
"""Run one call-intent reconciliation sweep outside the web process.

Usage:
    python scripts/reconcile_calls.py [--grace-seconds 0] [--batch-size 200]

Retries pending or failed call intents the same way the in-process
reconciler does. Useful after an outage of the video platform, or when
the background loop is disabled. Exit code 1 if any intent failed.
"""

import argparse
import asyncio
import sys

import structlog
from fastapi import FastAPI

from src.buddy.api.middleware.logging import configure_structlog
from src.buddy.config import get_settings
from src.buddy.core.database import close_db
from src.buddy.core.redis import close_redis
from src.buddy.main import build_services
from src.buddy.meetings.reconciler import CallReconciler

logger = structlog.get_logger(__name__)


async def run(grace_seconds: int | None, batch_size: int | None) -> int:
    settings = get_settings()
    services = build_services(FastAPI(), settings)
    reconciler = CallReconciler(
        meetings=services.meetings,
        agents=services.agents,
        provisioner=services.provisioner,
        grace_seconds=(
            grace_seconds if grace_seconds is not None else settings.CALL_RECONCILE_GRACE_SECONDS
        ),
        max_attempts=settings.CALL_RECONCILE_MAX_ATTEMPTS,
        batch_size=batch_size or settings.CALL_RECONCILE_BATCH_SIZE,
    )

    try:
        result = await reconciler.sweep()
    finally:
        await close_db()
        await close_redis()

    logger.info("reconcile_calls.finished", failed=result.failed)
    print(
        f"scanned={result.scanned} completed={result.completed} "
        f"failed={result.failed} skipped={result.skipped}"
    )
    return 1 if result.failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Retry outstanding meeting call intents")
    parser.add_argument(
        "--grace-seconds",
        type=int,
        default=None,
        help="Minimum intent age before retrying (default: CALL_RECONCILE_GRACE_SECONDS)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Maximum intents to retry (default: CALL_RECONCILE_BATCH_SIZE)",
    )
    args = parser.parse_args()

    configure_structlog()
    sys.exit(asyncio.run(run(args.grace_seconds, args.batch_size)))


if __name__ == "__main__":
    main()
