# FILE: app/calendar_sync.py
# ==============================================================================
# Calendar cache. Guest-facing availability reads the cached_calendar_dates
# snapshot instead of hitting third-party feeds live. A failed sync leaves the
# previous snapshot in place until the next successful run.
# ==============================================================================
import datetime
import logging
from typing import List, Optional, Set

import httpx
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, ical_feed, models
from .errors import NaOdludzieError, NotFoundError, ValidationError
from .schemas import FeedEventOut, FeedPreview, FeedTestResult, SyncReport
from .utils.db_manager import db_session_manager

ICAL_SOURCE = "ical"


def nights_between(start_date: datetime.date, end_date: datetime.date) -> List[datetime.date]:
    return ical_feed.expand_event(ical_feed.FeedEvent(start_date=start_date, end_date=end_date))


async def get_blocked_dates(db: AsyncSession, cabin_id: int,
                            exclude_request_id: Optional[int] = None) -> Set[datetime.date]:
    """Approved booking nights plus cached external-calendar dates."""
    stmt = select(models.BookingRequest.id, models.BookingRequest.start_date, models.BookingRequest.end_date).where(
        models.BookingRequest.cabin_id == cabin_id,
        models.BookingRequest.status == models.BookingRequestStatus.APPROVED,
    )
    result = await db.execute(stmt)
    blocked = set()
    for request_id, start_date, end_date in result.all():
        if request_id == exclude_request_id:
            continue
        blocked.update(nights_between(start_date, end_date))

    cached = await db.execute(
        select(models.CachedCalendarDate.blocked_date).where(models.CachedCalendarDate.cabin_id == cabin_id)
    )
    blocked.update(cached.scalars().all())
    return blocked


async def test_feed(url: str, client: Optional[httpx.AsyncClient] = None) -> FeedTestResult:
    """Checks a feed URL before a host saves it. Nothing is persisted."""
    try:
        content = await ical_feed.fetch_feed(url, timeout=config.ICAL_FETCH_TIMEOUT, client=client)
        events = ical_feed.parse_events(content)
    except NaOdludzieError as e:
        logging.info(f"SYNC: Feed test failed for {url}: {e.message}")
        return FeedTestResult(success=False, error=e.message)
    except Exception as e:
        logging.error(f"SYNC: Unreadable feed at {url}.", exc_info=e)
        return FeedTestResult(success=False, error=f"Invalid iCal format - {e}")
    return FeedTestResult(success=True, events_count=len(events))


async def preview_feed(url: str, today: Optional[datetime.date] = None,
                       client: Optional[httpx.AsyncClient] = None) -> FeedPreview:
    content = await ical_feed.fetch_feed(url, timeout=config.ICAL_FETCH_TIMEOUT, client=client)
    events = ical_feed.parse_events(content)
    dates = ical_feed.blocked_dates(events, today)
    logging.info(f"SYNC: Preview of {url}: {len(events)} events, {len(dates)} blocked dates.")
    return FeedPreview(
        dates=dates,
        events=[FeedEventOut(start_date=e.start_date, end_date=e.end_date, summary=e.summary) for e in events],
        events_count=len(events),
    )


async def preview_cabin_feed(db: AsyncSession, cabin_id: int, today: Optional[datetime.date] = None,
                             client: Optional[httpx.AsyncClient] = None) -> FeedPreview:
    cabin = await db.get(models.Cabin, cabin_id)
    if not cabin or not cabin.ical_url:
        logging.info(f"SYNC: No iCal URL found for cabin {cabin_id}.")
        return FeedPreview()
    return await preview_feed(cabin.ical_url, today=today, client=client)


async def _replace_cached_dates(db: AsyncSession, cabin_id: int, dates: List[datetime.date]) -> None:
    """Swaps the cabin's iCal-sourced rows for a new set in one transaction."""
    now = models.utcnow()
    try:
        await db.execute(
            delete(models.CachedCalendarDate).where(
                models.CachedCalendarDate.cabin_id == cabin_id,
                models.CachedCalendarDate.source == ICAL_SOURCE,
            )
        )
        db.add_all([
            models.CachedCalendarDate(cabin_id=cabin_id, blocked_date=day, source=ICAL_SOURCE, synced_at=now)
            for day in dates
        ])
        cabin = await db.get(models.Cabin, cabin_id)
        cabin.last_ical_sync = now
        await db.commit()
    except Exception:
        await db.rollback()
        raise


@db_session_manager
async def sync_cabin_calendar(cabin_id: int, *, db: AsyncSession, today: Optional[datetime.date] = None,
                              timeout: float = config.ICAL_FETCH_TIMEOUT,
                              client: Optional[httpx.AsyncClient] = None) -> List[datetime.date]:
    cabin = await db.get(models.Cabin, cabin_id)
    if not cabin:
        raise NotFoundError("Cabin not found")
    if not cabin.ical_url:
        raise ValidationError("Cabin has no iCal URL")

    content = await ical_feed.fetch_feed(cabin.ical_url, timeout=timeout, client=client)
    events = ical_feed.parse_events(content)
    dates = ical_feed.blocked_dates(events, today)
    await _replace_cached_dates(db, cabin_id, dates)
    logging.info(f"SYNC: Cabin {cabin_id}: {len(events)} events, {len(dates)} blocked dates cached.")
    return dates


@db_session_manager
async def sync_all_calendars(*, db: AsyncSession, today: Optional[datetime.date] = None,
                             client: Optional[httpx.AsyncClient] = None) -> List[SyncReport]:
    """Refreshes every cabin with a feed. One broken feed never stops the batch."""
    logging.info("SYNC: Starting calendar sync for all cabins...")
    result = await db.execute(
        select(models.Cabin.id, models.Cabin.title).where(
            models.Cabin.ical_url.is_not(None),
            models.Cabin.ical_url != "",
        ).order_by(models.Cabin.id)
    )
    cabins = result.all()
    logging.info(f"SYNC: Found {len(cabins)} cabins with iCal URLs.")

    reports = []
    for cabin_id, title in cabins:
        try:
            dates = await sync_cabin_calendar(
                cabin_id, db=db, today=today, timeout=config.ICAL_BATCH_FETCH_TIMEOUT, client=client
            )
            reports.append(SyncReport(cabin_id=cabin_id, title=title, success=True, dates_count=len(dates)))
        except Exception as e:
            message = e.message if isinstance(e, NaOdludzieError) else str(e) or "Unknown error"
            logging.error(f"SYNC: Error syncing {title} ({cabin_id}): {message}", exc_info=not isinstance(e, NaOdludzieError))
            reports.append(SyncReport(cabin_id=cabin_id, title=title, success=False, error=message))

    success_count = sum(1 for r in reports if r.success)
    logging.info(f"SYNC: Sync complete: {success_count}/{len(reports)} successful.")
    return reports
