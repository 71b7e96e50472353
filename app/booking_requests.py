# FILE: app/booking_requests.py
# ==============================================================================
# Booking request lifecycle: pending -> approved | rejected. Terminal states
# never transition further. Email side effects never roll back a transition.
# ==============================================================================
import datetime
import logging
import re
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from . import calendar_sync, config, models, notifications, pricing
from .errors import (
    AuthorizationError,
    BookingConflictError,
    InvalidStateError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from .schemas import AnonymousGuest, BookingRequestDetail
from .security import Identity, ensure_user
from .utils.db_manager import db_session_manager

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]{9,20}$")

TERMINAL_STATUSES = {models.BookingRequestStatus.APPROVED, models.BookingRequestStatus.REJECTED}


def validate_stay(cabin: models.Cabin, start_date: datetime.date, end_date: datetime.date, guests_count: int) -> int:
    """Checks the range and party size against the listing; returns nights."""
    if start_date >= end_date:
        raise ValidationError("Data wyjazdu musi być późniejsza niż data przyjazdu.")
    nights = pricing.count_nights(start_date, end_date)
    if nights < cabin.min_nights:
        raise ValidationError(f"Minimalny pobyt to {cabin.min_nights} nocy.")
    if guests_count < 1:
        raise ValidationError("Liczba gości musi wynosić co najmniej 1.")
    if guests_count > cabin.max_guests:
        raise ValidationError(f"Maksymalna liczba gości to {cabin.max_guests}.")
    return nights


def validate_anonymous_guest(guest: AnonymousGuest) -> None:
    if not EMAIL_RE.match(guest.email.strip()):
        raise ValidationError("Nieprawidłowy adres email.")
    if not PHONE_RE.match(guest.phone.strip()):
        raise ValidationError("Nieprawidłowy numer telefonu.")


def overlaps(blocked: set, start_date: datetime.date, end_date: datetime.date) -> bool:
    return any(day in blocked for day in calendar_sync.nights_between(start_date, end_date))


async def _load_cabin(db: AsyncSession, cabin_id: int, for_update: bool = False) -> models.Cabin:
    stmt = select(models.Cabin).where(models.Cabin.id == cabin_id)
    if for_update:
        stmt = stmt.with_for_update()
    cabin = (await db.execute(stmt)).scalar_one_or_none()
    if not cabin:
        raise NotFoundError("Cabin not found")
    return cabin


async def create_booking_request(db: AsyncSession, cabin_id: int, identity: Optional[Identity],
                                 start_date: datetime.date, end_date: datetime.date, guests_count: int,
                                 message: Optional[str] = None,
                                 anonymous_guest: Optional[AnonymousGuest] = None) -> models.BookingRequest:
    """
    Submits a guest's request for a stay.

    Authenticated guests get a persisted pending request. Anonymous guests only
    produce an email to the host, so a delivery failure is raised for them;
    the returned request is not saved.
    """
    authenticated = identity is not None and bool(identity.user_id)
    if not authenticated and anonymous_guest is None:
        raise ValidationError("Podaj dane kontaktowe lub zaloguj się.")
    if not authenticated:
        validate_anonymous_guest(anonymous_guest)

    cabin = await _load_cabin(db, cabin_id)
    if cabin.status != models.CabinStatus.ACTIVE:
        raise ValidationError("Ten domek nie przyjmuje obecnie rezerwacji.")
    validate_stay(cabin, start_date, end_date, guests_count)

    blocked = await calendar_sync.get_blocked_dates(db, cabin_id)
    if overlaps(blocked, start_date, end_date):
        raise ValidationError("Wybrany zakres dat zawiera dni, które są już zajęte.")

    quote = pricing.quote_for_cabin(cabin, start_date, end_date, authenticated=authenticated)
    host = await db.get(models.Profile, cabin.owner_id)
    message = (message or "").strip() or None

    request = models.BookingRequest(
        cabin_id=cabin.id,
        guest_id=identity.user_id if authenticated else None,
        host_id=cabin.owner_id,
        start_date=start_date,
        end_date=end_date,
        guests_count=guests_count,
        message=message,
        status=models.BookingRequestStatus.PENDING,
    )

    if not authenticated:
        if not host or not host.email:
            raise UpstreamError("Could not find host email")
        email = notifications.format_anonymous_request_to_host(
            host.email, host.name, cabin.title,
            guest_name=anonymous_guest.name.strip() or "Gość",
            guest_email=anonymous_guest.email.strip(),
            guest_phone=anonymous_guest.phone.strip(),
            start_date=start_date, end_date=end_date,
            guests_count=guests_count, total_price=quote.total, message=message,
        )
        await notifications.send(email)
        logging.info(f"BOOKING: Anonymous request for cabin {cabin.id} forwarded to host {cabin.owner_id}.")
        return request

    db.add(request)
    await db.commit()
    await db.refresh(request)
    logging.info(f"BOOKING: Request {request.id} created for cabin {cabin.id} by guest {request.guest_id}.")

    if host and host.email:
        guest = await db.get(models.Profile, identity.user_id)
        await notifications.dispatch(notifications.format_new_request_to_host(
            host.email, host.name, cabin.title,
            guest_name=(guest.name if guest and guest.name else None) or identity.email or "Gość",
            guest_email=(guest.email if guest else None) or identity.email,
            guest_phone=guest.phone if guest else None,
            start_date=start_date, end_date=end_date,
            guests_count=guests_count, total_price=quote.total, message=message,
        ))
    else:
        logging.warning(f"BOOKING: Host {cabin.owner_id} has no email; request {request.id} not announced.")
    return request


async def get_booking_request(db: AsyncSession, request_id: int) -> models.BookingRequest:
    request = await db.get(models.BookingRequest, request_id)
    if not request:
        raise NotFoundError("Booking request not found")
    return request


async def transition_booking_request(db: AsyncSession, request_id: int, identity: Identity,
                                     new_status: models.BookingRequestStatus,
                                     comment: Optional[str] = None) -> models.BookingRequest:
    identity = ensure_user(identity)
    new_status = models.BookingRequestStatus(new_status)
    if new_status not in TERMINAL_STATUSES:
        raise ValidationError("Status must be approved or rejected")

    request = await get_booking_request(db, request_id)
    if request.host_id != identity.user_id:
        raise AuthorizationError("Only the host of this listing can answer this request")
    if request.status != models.BookingRequestStatus.PENDING:
        raise InvalidStateError(f"Booking request is already {request.status.value}")

    if new_status == models.BookingRequestStatus.APPROVED:
        # Lock the cabin row so two approvals for the same listing serialise here.
        await _load_cabin(db, request.cabin_id, for_update=True)
        blocked = await calendar_sync.get_blocked_dates(db, request.cabin_id, exclude_request_id=request.id)
        if overlaps(blocked, request.start_date, request.end_date):
            await db.rollback()
            raise BookingConflictError("These dates overlap an approved booking or a blocked external date")

    # Conditional write: only a still-pending row may change.
    result = await db.execute(
        update(models.BookingRequest)
        .where(
            models.BookingRequest.id == request.id,
            models.BookingRequest.status == models.BookingRequestStatus.PENDING,
        )
        .values(status=new_status, updated_at=models.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Booking request is no longer pending")
    await db.commit()
    await db.refresh(request)
    logging.info(f"BOOKING: Request {request.id} {new_status.value} by host {identity.user_id}.")

    cabin = await db.get(models.Cabin, request.cabin_id)
    guest = await db.get(models.Profile, request.guest_id) if request.guest_id else None
    if guest and guest.email:
        await notifications.dispatch(notifications.format_status_change_to_guest(
            guest.email, guest.name, cabin.title if cabin else "Domek",
            request.start_date, request.end_date,
            approved=new_status == models.BookingRequestStatus.APPROVED,
            host_comment=(comment or "").strip() or None,
        ))
    return request


@db_session_manager
async def expire_stale_booking_requests(now: Optional[datetime.datetime] = None, *, db: AsyncSession) -> int:
    """Auto-rejects requests left pending longer than the response window."""
    now = now or models.utcnow()
    cutoff = now - datetime.timedelta(hours=config.BOOKING_REQUEST_TTL_HOURS)
    logging.info("SWEEPER: Starting expired booking requests check...")

    result = await db.execute(
        select(models.BookingRequest.id).where(
            models.BookingRequest.status == models.BookingRequestStatus.PENDING,
            models.BookingRequest.created_at < cutoff,
        )
    )
    stale_ids = list(result.scalars().all())
    logging.info(f"SWEEPER: Found {len(stale_ids)} expired booking requests.")

    expired = 0
    for request_id in stale_ids:
        try:
            update_result = await db.execute(
                update(models.BookingRequest)
                .where(
                    models.BookingRequest.id == request_id,
                    models.BookingRequest.status == models.BookingRequestStatus.PENDING,
                )
                .values(status=models.BookingRequestStatus.REJECTED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception as e:
            await db.rollback()
            logging.error(f"SWEEPER: Error updating booking request {request_id}.", exc_info=e)
            continue
        if update_result.rowcount != 1:
            continue
        expired += 1

        request = await db.get(models.BookingRequest, request_id)
        cabin = await db.get(models.Cabin, request.cabin_id)
        cabin_title = cabin.title if cabin else None
        guest = await db.get(models.Profile, request.guest_id) if request.guest_id else None
        host = await db.get(models.Profile, request.host_id)
        if guest and guest.email:
            await notifications.dispatch(notifications.format_expired_to_guest(guest.email, guest.name, cabin_title))
        if host and host.email:
            await notifications.dispatch(notifications.format_missed_to_host(host.email, host.name, cabin_title))
        logging.info(f"SWEEPER: Booking request {request_id} for {cabin_title} auto-rejected.")

    return expired


async def _list_details(db: AsyncSession, *conditions) -> List[BookingRequestDetail]:
    guest = aliased(models.Profile)
    host = aliased(models.Profile)
    stmt = (
        select(models.BookingRequest, models.Cabin.title, models.Cabin.slug, guest.name, guest.email, host.name)
        .join(models.Cabin, models.Cabin.id == models.BookingRequest.cabin_id)
        .outerjoin(guest, guest.id == models.BookingRequest.guest_id)
        .outerjoin(host, host.id == models.BookingRequest.host_id)
        .where(*conditions)
        .order_by(models.BookingRequest.created_at.desc())
    )
    rows = (await db.execute(stmt)).all()
    details = []
    for request, cabin_title, cabin_slug, guest_name, guest_email, host_name in rows:
        base = BookingRequestDetail.model_validate(
            {
                "id": request.id,
                "cabin_id": request.cabin_id,
                "guest_id": request.guest_id,
                "host_id": request.host_id,
                "start_date": request.start_date,
                "end_date": request.end_date,
                "guests_count": request.guests_count,
                "message": request.message,
                "status": request.status,
                "created_at": request.created_at,
                "cabin_title": cabin_title,
                "cabin_slug": cabin_slug,
                "guest_name": guest_name,
                "guest_email": guest_email,
                "host_name": host_name,
            }
        )
        details.append(base)
    return details


async def list_for_host(db: AsyncSession, identity: Identity) -> List[BookingRequestDetail]:
    identity = ensure_user(identity)
    return await _list_details(db, models.BookingRequest.host_id == identity.user_id)


async def list_for_guest(db: AsyncSession, identity: Identity) -> List[BookingRequestDetail]:
    identity = ensure_user(identity)
    return await _list_details(db, models.BookingRequest.guest_id == identity.user_id)
