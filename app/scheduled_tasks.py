# FILE: app/scheduled_tasks.py
# ==============================================================================
# Periodic jobs. Each one is stateless and idempotent, so a missed or repeated
# run is harmless; the same operations are exposed as service-role routes.
# ==============================================================================
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession

from . import booking_requests, cabins, calendar_sync, config
from .utils.db_manager import db_session_manager

scheduler = AsyncIOScheduler(timezone=config.TIMEZONE)


@db_session_manager
async def check_expired_bookings_task(*, db: AsyncSession):
    """Auto-rejects booking requests nobody answered within 24 hours."""
    try:
        count = await booking_requests.expire_stale_booking_requests(db=db)
        logging.info(f"SWEEPER: Processed {count} expired booking requests.")
    except Exception as e:
        logging.error("SWEEPER: Critical error in check_expired_bookings_task.", exc_info=e)
        await db.rollback()


@db_session_manager
async def check_expired_cabins_task(*, db: AsyncSession):
    """Moves listings past their 60-day period back to review."""
    try:
        count = await cabins.expire_stale_cabins(db=db)
        logging.info(f"SWEEPER: Processed {count} expired cabins.")
    except Exception as e:
        logging.error("SWEEPER: Critical error in check_expired_cabins_task.", exc_info=e)
        await db.rollback()


@db_session_manager
async def sync_all_calendars_task(*, db: AsyncSession):
    try:
        reports = await calendar_sync.sync_all_calendars(db=db)
        failed = [r for r in reports if not r.success]
        if failed:
            logging.warning(f"SYNC: {len(failed)} calendars failed: {', '.join(r.title for r in failed)}")
    except Exception as e:
        logging.error("SYNC: Critical error in sync_all_calendars_task.", exc_info=e)
        await db.rollback()


def register_jobs():
    scheduler.add_job(check_expired_bookings_task, 'interval', hours=1, id="expired_bookings", replace_existing=True)
    scheduler.add_job(check_expired_cabins_task, 'cron', hour=3, minute=0, id="expired_cabins", replace_existing=True)
    scheduler.add_job(sync_all_calendars_task, 'interval', hours=6, id="calendar_sync", replace_existing=True)
