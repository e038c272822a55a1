"""
APScheduler wiring for recurring maintenance jobs
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from streamsub.core.config import settings
from streamsub.db.session import get_session_factory
from streamsub.services.expiry_scanner import ExpiryScanner
from streamsub.services.paystack import PaystackGateway


logger = logging.getLogger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


async def run_expiry_scan() -> None:
    """Job entry point: one sweep with fresh collaborators."""

    scanner = ExpiryScanner(
        get_session_factory(),
        PaystackGateway(settings.paystack),
        batch_size=settings.scheduler.batch_size,
    )
    try:
        await scanner.run_once()
    except Exception:
        # A failed sweep is retried on the next interval.
        logger.exception("Expiry scan failed")


def start_scheduler() -> Optional[AsyncIOScheduler]:
    """
    Start the scheduler if enabled in settings
    """
    global _scheduler
    if not settings.scheduler.enabled:
        logger.info("Scheduler disabled")
        return None
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
        _scheduler.add_job(
            run_expiry_scan,
            "interval",
            minutes=settings.scheduler.expiry_scan_interval_minutes,
            id="subscription_expiry_scan",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        _scheduler.start()
        logger.info(
            f"Scheduler started: expiry scan every {settings.scheduler.expiry_scan_interval_minutes} min"
        )
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None
