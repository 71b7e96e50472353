# FILE: app/ical_feed.py
# ==============================================================================
# Availability source adapter: fetches a remote iCal feed and turns its VEVENTs
# into blocked calendar dates. Feeds come from Booking.com, Airbnb and friends
# and are only loosely validated.
# ==============================================================================
import datetime
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional
from urllib.parse import urlparse

import httpx
from icalendar import Calendar

from . import config
from .errors import UpstreamError, ValidationError

CALENDAR_MARKER = "BEGIN:VCALENDAR"
CALENDAR_END = "END:VCALENDAR"
ACCEPT_HEADER = "text/calendar, application/calendar+xml, text/plain"


@dataclass(frozen=True)
class FeedEvent:
    start_date: datetime.date
    end_date: datetime.date
    summary: Optional[str] = None


def validate_feed_url(url: str) -> str:
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Invalid URL format")
    return url


async def fetch_feed(url: str, timeout: float = config.ICAL_FETCH_TIMEOUT,
                     client: Optional[httpx.AsyncClient] = None) -> str:
    """Downloads a feed and checks it looks like a calendar at all."""
    url = validate_feed_url(url)
    headers = {"User-Agent": config.HTTP_USER_AGENT, "Accept": ACCEPT_HEADER}
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                response = await own_client.get(url, headers=headers)
        else:
            response = await client.get(url, headers=headers, timeout=timeout)
    except httpx.TimeoutException:
        raise UpstreamError("Request timeout - calendar server took too long to respond")
    except httpx.HTTPError as e:
        raise UpstreamError(f"Failed to fetch calendar: {e}")

    if response.status_code >= 400:
        raise UpstreamError(f"Failed to fetch calendar: {response.status_code}")

    content = response.text
    if CALENDAR_MARKER not in content:
        raise UpstreamError("Invalid iCal format - not a valid calendar file")
    return content


def _as_date(value) -> Optional[datetime.date]:
    # Only the calendar date matters; the time-of-day part is dropped as written.
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return None


def _property_date(component, name: str) -> Optional[datetime.date]:
    prop = component.get(name)
    # Some publishers repeat DTSTART/DTEND; the first one wins.
    if isinstance(prop, list):
        prop = prop[0] if prop else None
    return _as_date(prop.dt) if prop is not None else None


def prepare_content(content: str) -> str:
    """Drops a leading BOM and closes a calendar whose END:VCALENDAR was cut off."""
    content = content.lstrip("\ufeff")
    if CALENDAR_END not in content:
        content = content.rstrip() + "\r\n" + CALENDAR_END + "\r\n"
    return content


def parse_events(content: str) -> List[FeedEvent]:
    """Parses every VEVENT with readable DTSTART and DTEND; the rest are skipped."""
    try:
        calendar = Calendar.from_ical(prepare_content(content))
    except (ValueError, IndexError, KeyError) as e:
        raise UpstreamError(f"Invalid iCal format - {e}")

    events = []
    for component in calendar.walk("VEVENT"):
        try:
            start = _property_date(component, "DTSTART")
            end = _property_date(component, "DTEND")
        except (ValueError, AttributeError, KeyError) as e:
            logging.warning(f"SYNC: Skipping event {component.get('UID')} with unreadable dates: {e}")
            continue
        if start is None or end is None:
            continue
        summary = component.get("SUMMARY")
        events.append(FeedEvent(start_date=start, end_date=end,
                                summary=str(summary) if summary is not None else None))
    return events


def expand_event(event: FeedEvent) -> List[datetime.date]:
    """Nights covered by an event: [start, end). The checkout day stays free."""
    days = []
    current = event.start_date
    while current < event.end_date:
        days.append(current)
        current += datetime.timedelta(days=1)
    return days


def blocked_dates(events: Iterable[FeedEvent], today: Optional[datetime.date] = None) -> List[datetime.date]:
    today = today or datetime.date.today()
    dates = set()
    for event in events:
        dates.update(day for day in expand_event(event) if day >= today)
    return sorted(dates)
