"""
Pending payment sweep worker.

Webhooks can be lost. Every ``pending_sweep_interval_seconds`` this worker
polls MoneyFusion for payments that have stayed pending longer than
``pending_sweep_age_seconds``.
"""
import asyncio
import signal
from typing import Any, Dict, Optional

import structlog

from fusion_payments.config import Settings, get_settings
from fusion_payments.database.connection import init_db
from fusion_payments.monitoring.logging import setup_logging
from fusion_payments.services import PaymentServices

logger = structlog.get_logger(__name__)


async def run_pending_sweep(
    services: PaymentServices,
    older_than_seconds: Optional[int] = None,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Run one sweep and log its summary."""
    logger.info("pending_sweep_run_started")

    try:
        summary = await services.engine.reconcile_pending(
            older_than_seconds=older_than_seconds, limit=limit
        )
    except Exception as e:
        logger.error("pending_sweep_run_failed", error=str(e))
        raise

    if summary["fallbacks"]:
        logger.warning(
            "pending_sweep_gateway_unavailable",
            fallbacks=summary["fallbacks"],
            checked=summary["checked"],
        )

    return summary


async def start_reconciliation_worker(
    settings: Optional[Settings] = None, run_once: bool = False
) -> None:
    """
    Start the pending sweep worker.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        run_once: Run a single sweep and exit
    """
    settings = settings or get_settings()
    setup_logging(settings)

    interval = settings.pending_sweep_interval_seconds
    logger.info("reconciliation_worker_starting", interval_seconds=interval, run_once=run_once)

    services = PaymentServices.from_settings(settings)
    await init_db(services.db_engine)

    running = True

    def signal_handler(sig: int, frame: Any) -> None:
        nonlocal running
        logger.info("reconciliation_worker_shutdown_signal_received", signal=sig)
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while running:
            try:
                await run_pending_sweep(services)
            except Exception as e:
                # Keep sweeping; the next run retries the same payments
                logger.error("reconciliation_execution_error", error=str(e))

            if run_once:
                break

            # Sleep in slices so shutdown signals are noticed
            remaining = interval
            while remaining > 0 and running:
                sleep_time = min(remaining, 5)
                await asyncio.sleep(sleep_time)
                remaining -= sleep_time

    finally:
        await services.close()
        logger.info("reconciliation_worker_stopped")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Pending payment sweep worker")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    args = parser.parse_args()

    asyncio.run(start_reconciliation_worker(run_once=args.once))
