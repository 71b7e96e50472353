"""Calendar cache: sync, failure isolation and the blocked-date view."""

import datetime

import httpx
import pytest
from sqlalchemy import select

from app import calendar_sync, models
from app.errors import NotFoundError, UpstreamError, ValidationError

TODAY = datetime.date(2025, 1, 1)
GOOD_URL = "https://good.example.com/feed.ics"
BAD_URL = "https://bad.example.com/feed.ics"


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def cached_dates(db, cabin_id):
    result = await db.execute(
        select(models.CachedCalendarDate.blocked_date)
        .where(models.CachedCalendarDate.cabin_id == cabin_id)
        .order_by(models.CachedCalendarDate.blocked_date)
    )
    return list(result.scalars().all())


async def test_sync_cabin_calendar_replaces_cache(db, make_cabin, feed):
    cabin = await make_cabin(ical_url=GOOD_URL)
    db.add(models.CachedCalendarDate(cabin_id=cabin.id, blocked_date=datetime.date(2025, 3, 1), source="ical"))
    await db.commit()

    async with client_for(lambda request: httpx.Response(200, text=feed(("20250110", "20250113")))) as client:
        dates = await calendar_sync.sync_cabin_calendar(cabin.id, db=db, today=TODAY, client=client)

    expected = [datetime.date(2025, 1, 10), datetime.date(2025, 1, 11), datetime.date(2025, 1, 12)]
    assert dates == expected
    assert await cached_dates(db, cabin.id) == expected
    last_sync = (await db.execute(
        select(models.Cabin.last_ical_sync).where(models.Cabin.id == cabin.id)
    )).scalar_one()
    assert last_sync is not None


async def test_failed_sync_keeps_previous_snapshot(db, make_cabin):
    cabin = await make_cabin(ical_url=BAD_URL)
    db.add(models.CachedCalendarDate(cabin_id=cabin.id, blocked_date=datetime.date(2025, 3, 1), source="ical"))
    await db.commit()

    async with client_for(lambda request: httpx.Response(200, text="this is not a calendar")) as client:
        with pytest.raises(UpstreamError):
            await calendar_sync.sync_cabin_calendar(cabin.id, db=db, today=TODAY, client=client)

    assert await cached_dates(db, cabin.id) == [datetime.date(2025, 3, 1)]


async def test_sync_unknown_cabin(db):
    with pytest.raises(NotFoundError):
        await calendar_sync.sync_cabin_calendar(999, db=db)


async def test_sync_cabin_without_feed(db, cabin):
    with pytest.raises(ValidationError, match="no iCal URL"):
        await calendar_sync.sync_cabin_calendar(cabin.id, db=db)


async def test_sync_all_isolates_failures(db, make_cabin, feed):
    good = await make_cabin(title="Dobra", ical_url=GOOD_URL)
    bad = await make_cabin(title="Zła", ical_url=BAD_URL)
    await make_cabin(title="Bez kalendarza", ical_url=None)

    def handler(request):
        if request.url.host == "good.example.com":
            return httpx.Response(200, text=feed(("20250110", "20250112")))
        return httpx.Response(500)

    async with client_for(handler) as client:
        reports = await calendar_sync.sync_all_calendars(db=db, today=TODAY, client=client)

    by_id = {r.cabin_id: r for r in reports}
    assert set(by_id) == {good.id, bad.id}
    assert by_id[good.id].success and by_id[good.id].dates_count == 2
    assert not by_id[bad.id].success and "500" in by_id[bad.id].error
    assert len(await cached_dates(db, good.id)) == 2
    assert await cached_dates(db, bad.id) == []


async def test_test_feed_reports_failure_without_raising():
    async with client_for(lambda request: httpx.Response(200, text="<html></html>")) as client:
        result = await calendar_sync.test_feed(GOOD_URL, client=client)
    assert result.success is False
    assert "Invalid iCal format" in result.error


async def test_test_feed_counts_events(feed):
    async with client_for(lambda request: httpx.Response(200, text=feed(("20250110", "20250113"), ("20250201", "20250203")))) as client:
        result = await calendar_sync.test_feed(GOOD_URL, client=client)
    assert result.success is True
    assert result.events_count == 2


async def test_preview_cabin_without_feed_is_empty(db, cabin):
    preview = await calendar_sync.preview_cabin_feed(db, cabin.id)
    assert preview.dates == [] and preview.events == []


async def test_blocked_dates_combine_approved_requests_and_cache(db, cabin, make_request):
    await make_request(cabin, datetime.date(2025, 5, 1), datetime.date(2025, 5, 3),
                       status=models.BookingRequestStatus.APPROVED)
    await make_request(cabin, datetime.date(2025, 6, 1), datetime.date(2025, 6, 3))
    db.add(models.CachedCalendarDate(cabin_id=cabin.id, blocked_date=datetime.date(2025, 5, 10), source="ical"))
    await db.commit()

    blocked = await calendar_sync.get_blocked_dates(db, cabin.id)
    assert blocked == {datetime.date(2025, 5, 1), datetime.date(2025, 5, 2), datetime.date(2025, 5, 10)}


async def test_test_feed_skips_broken_events_and_keeps_good_ones():
    content = (
        "\ufeffBEGIN:VCALENDAR\r\nVERSION:2.0\r\nPRODID:-//Test//Feed//EN\r\n"
        "BEGIN:VEVENT\r\nUID:broken@example.com\r\nDTSTART;VALUE=DATE:2025011\r\n"
        "DTEND;VALUE=DATE:20250105\r\nEND:VEVENT\r\n"
        "BEGIN:VEVENT\r\nUID:good@example.com\r\nDTSTART;VALUE=DATE:20250110\r\n"
        "DTEND;VALUE=DATE:20250112\r\nEND:VEVENT\r\n"
    )
    async with client_for(lambda request: httpx.Response(200, text=content)) as client:
        result = await calendar_sync.test_feed(GOOD_URL, client=client)
    assert result.success is True
    assert result.events_count == 1


async def test_test_feed_never_raises_on_unreadable_content(monkeypatch, feed):
    def explode(content):
        raise AttributeError("'list' object has no attribute 'dt'")

    monkeypatch.setattr(calendar_sync.ical_feed, "parse_events", explode)
    async with client_for(lambda request: httpx.Response(200, text=feed(("20250110", "20250113")))) as client:
        result = await calendar_sync.test_feed(GOOD_URL, client=client)
    assert result.success is False
    assert "Invalid iCal format" in result.error
