"""
Cleanup scheduler for webhook delivery records and session tokens.

This scheduler runs daily to:
1. Delete processed webhook records older than the retention period
2. Delete session tokens that expired more than a day ago
"""

import asyncio
import logging
from datetime import timezone
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore

from core.constants import (
    CLEANUP_HOUR_UTC,
    EXPIRED_SESSION_RETENTION_HOURS,
    PROCESSED_WEBHOOK_RETENTION_HOURS,
)
from core.database import get_db_context
from services.auth_session_service import AuthSessionService
from services.inbound_delivery_service import delete_old_records

logger = logging.getLogger(__name__)

# Global singleton instance
_cleanup_scheduler: Optional['CleanupScheduler'] = None


class CleanupScheduler:
    """
    Scheduler for running cleanup tasks.

    Runs daily at CLEANUP_HOUR_UTC. Delivery records only need to outlive the
    gateway's retry horizon, so old ones are dropped to keep the table small.
    """

    def __init__(self):
        """
        Initialize the cleanup scheduler.

        Note: Database sessions are created fresh for each scheduler run
        to avoid stale session issues.
        """
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._is_started = False

    async def start_scheduler(self) -> None:
        """
        Start the background scheduler for cleanup tasks.

        This should be called during application startup.
        """
        if self._is_started:
            logger.warning("Cleanup scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._run_cleanup,
            CronTrigger(hour=CLEANUP_HOUR_UTC, minute=0),
            id="webhook_and_session_cleanup",
            name="Processed webhook and expired session cleanup",
            replace_existing=True,
            misfire_grace_time=3600,  # Allow 1 hour grace time if server was down
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(f"Cleanup scheduler started (runs daily at {CLEANUP_HOUR_UTC}:00 UTC)")

    async def stop_scheduler(self) -> None:
        """
        Stop the background scheduler.

        This should be called during application shutdown.
        """
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Cleanup scheduler stopped")

    async def _run_cleanup(self) -> None:
        """
        Run cleanup tasks.

        Offloads the blocking database work to a thread so the event loop
        keeps serving webhooks.
        """
        logger.info("Starting scheduled cleanup tasks...")
        await asyncio.to_thread(self._execute_cleanup_logic)

    def _execute_cleanup_logic(self) -> None:
        """Execute the actual cleanup logic (synchronous/blocking operations)."""
        with get_db_context() as db:
            try:
                deleted_webhooks = delete_old_records(db, PROCESSED_WEBHOOK_RETENTION_HOURS)
                logger.info(f"Deleted {deleted_webhooks} processed webhook records")

                deleted_sessions = AuthSessionService.delete_expired_sessions(
                    db, EXPIRED_SESSION_RETENTION_HOURS
                )
                logger.info(f"Deleted {deleted_sessions} expired session tokens")

                logger.info("✅ Scheduled cleanup tasks completed successfully")

            except Exception as e:
                logger.exception(f"❌ Error during scheduled cleanup: {e}")
                # Don't re-raise - allow scheduler to continue


def get_cleanup_scheduler() -> CleanupScheduler:
    """
    Get the global cleanup scheduler instance.

    Returns:
        CleanupScheduler: The global scheduler instance
    """
    global _cleanup_scheduler
    if _cleanup_scheduler is None:
        _cleanup_scheduler = CleanupScheduler()
    return _cleanup_scheduler


async def start_cleanup_scheduler() -> None:
    """Start the global cleanup scheduler (application startup)."""
    scheduler = get_cleanup_scheduler()
    await scheduler.start_scheduler()


async def stop_cleanup_scheduler() -> None:
    """Stop the global cleanup scheduler (application shutdown)."""
    global _cleanup_scheduler
    if _cleanup_scheduler:
        await _cleanup_scheduler.stop_scheduler()
