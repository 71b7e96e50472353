# FILE: app/routes.py
# ==============================================================================
# HTTP surface. Handlers only resolve the caller, parse the body and delegate;
# domain errors are rendered by the handler registered in errors.py.
# ==============================================================================
import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from . import (
    booking_requests,
    cabins,
    calendar_sync,
    chat,
    config,
    contact,
    images,
    models,
    offgrid,
    og_metadata,
    payments,
    pricing,
    sitemap,
)
from .database import get_db
from .errors import ValidationError
from .schemas import (
    BookingPaymentRequest,
    BookingRequestCreate,
    BookingRequestDetail,
    BookingRequestOut,
    CabinCreate,
    CabinOut,
    CabinStatusChange,
    CabinUpdate,
    ChatMessageCreate,
    ChatMessageOut,
    CheckoutResult,
    ConnectAccountRequest,
    ConnectAccountResult,
    ConnectStatus,
    ContactRequest,
    FeedRequest,
    FeeLineOut,
    ImageOptimizeRequest,
    ImageOptimizeResult,
    NewUserNotice,
    NewsletterRequest,
    OffGridRequest,
    OffGridScoreOut,
    OnlinePaymentsRequest,
    PaymentVerification,
    PaymentVerificationRequest,
    QuoteOut,
    StatusChange,
    SweepResult,
    SyncAllResult,
    VerificationTransferRequest,
)
from .security import Identity, get_identity, get_optional_identity, require_service_role

router = APIRouter()


def request_origin(request: Request) -> str:
    return request.headers.get("origin") or config.SITE_URL


# --- Booking requests ---

@router.post("/booking-requests", response_model=BookingRequestOut, status_code=201)
async def create_booking_request(body: BookingRequestCreate,
                                 identity: Optional[Identity] = Depends(get_optional_identity),
                                 db: AsyncSession = Depends(get_db)):
    return await booking_requests.create_booking_request(
        db, body.cabin_id, identity, body.start_date, body.end_date, body.guests_count,
        message=body.message, anonymous_guest=body.guest,
    )


@router.get("/booking-requests/host", response_model=List[BookingRequestDetail])
async def host_booking_requests(identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await booking_requests.list_for_host(db, identity)


@router.get("/booking-requests/guest", response_model=List[BookingRequestDetail])
async def guest_booking_requests(identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await booking_requests.list_for_guest(db, identity)


@router.post("/booking-requests/{request_id}/status", response_model=BookingRequestOut)
async def change_booking_request_status(request_id: int, body: StatusChange,
                                        identity: Identity = Depends(get_identity),
                                        db: AsyncSession = Depends(get_db)):
    return await booking_requests.transition_booking_request(db, request_id, identity, body.status, body.comment)


@router.get("/booking-requests/{request_id}/messages", response_model=List[ChatMessageOut])
async def booking_messages(request_id: int, identity: Identity = Depends(get_identity),
                           db: AsyncSession = Depends(get_db)):
    return await chat.list_messages(db, identity, request_id)


@router.post("/booking-requests/{request_id}/messages", response_model=ChatMessageOut, status_code=201)
async def post_booking_message(request_id: int, body: ChatMessageCreate,
                               identity: Identity = Depends(get_identity),
                               db: AsyncSession = Depends(get_db)):
    return await chat.post_message(db, identity, request_id, body.message)


@router.post("/check-expired-bookings", response_model=SweepResult)
async def check_expired_bookings(identity: Identity = Depends(require_service_role),
                                 db: AsyncSession = Depends(get_db)):
    count = await booking_requests.expire_stale_booking_requests(db=db)
    return SweepResult(message=f"Processed {count} expired bookings", count=count)


# --- Listings ---

@router.get("/cabins", response_model=List[CabinOut])
async def list_cabins(max_price: Optional[int] = None, min_guests: Optional[int] = None,
                      min_score: Optional[float] = None, category: Optional[models.CabinCategory] = None,
                      voivodeship: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return await cabins.list_active_cabins(
        db, max_price=max_price, min_guests=min_guests, min_score=min_score,
        category=category, voivodeship=voivodeship,
    )


@router.get("/cabins/{slug}", response_model=CabinOut)
async def get_cabin(slug: str, db: AsyncSession = Depends(get_db)):
    return await cabins.get_active_cabin_by_slug(db, slug)


@router.post("/cabins", response_model=CabinOut, status_code=201)
async def create_cabin(body: CabinCreate, identity: Identity = Depends(get_identity),
                       db: AsyncSession = Depends(get_db)):
    return await cabins.create_cabin(db, identity, body)


@router.patch("/cabins/{cabin_id}", response_model=CabinOut)
async def update_cabin(cabin_id: int, body: CabinUpdate, identity: Identity = Depends(get_identity),
                       db: AsyncSession = Depends(get_db)):
    return await cabins.update_cabin(db, identity, cabin_id, body)


@router.get("/cabins/{cabin_id}/quote", response_model=QuoteOut)
async def quote_cabin(cabin_id: int, start_date: datetime.date = Query(...), end_date: datetime.date = Query(...),
                      identity: Optional[Identity] = Depends(get_optional_identity),
                      db: AsyncSession = Depends(get_db)):
    if start_date >= end_date:
        raise ValidationError("Data wyjazdu musi być późniejsza niż data przyjazdu.")
    cabin = await cabins.get_active_cabin(db, cabin_id)
    quote = pricing.quote_for_cabin(cabin, start_date, end_date, authenticated=identity is not None)
    return QuoteOut(
        nights=quote.nights,
        price_per_night=quote.price_per_night,
        accommodation_total=quote.accommodation_total,
        fees=[FeeLineOut(name=f.name, unit=f.unit, amount=f.amount, total=f.total) for f in quote.fees],
        extra_fees_total=quote.extra_fees_total,
        total=quote.total,
    )


@router.get("/cabins/{cabin_id}/blocked-dates", response_model=List[datetime.date])
async def cabin_blocked_dates(cabin_id: int, db: AsyncSession = Depends(get_db)):
    await cabins.get_cabin_or_404(db, cabin_id)
    return sorted(await calendar_sync.get_blocked_dates(db, cabin_id))


@router.post("/cabins/{cabin_id}/status", response_model=CabinOut)
async def change_cabin_status(cabin_id: int, body: CabinStatusChange, identity: Identity = Depends(get_identity),
                              db: AsyncSession = Depends(get_db)):
    return await cabins.set_cabin_status(db, identity, cabin_id, body.status)


@router.post("/cabins/{cabin_id}/renew", response_model=CabinOut)
async def renew_cabin(cabin_id: int, identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await cabins.renew_cabin(db, identity, cabin_id)


@router.post("/cabins/{cabin_id}/notify-admin")
async def notify_admin_new_cabin(cabin_id: int, identity: Identity = Depends(get_identity),
                                 db: AsyncSession = Depends(get_db)):
    sent = await cabins.notify_admin_new_cabin(db, identity, cabin_id)
    return {"success": sent}


@router.post("/check-expired-cabins", response_model=SweepResult)
async def check_expired_cabins(identity: Identity = Depends(require_service_role),
                               db: AsyncSession = Depends(get_db)):
    count = await cabins.expire_stale_cabins(db=db)
    return SweepResult(message=f"Processed {count} expired cabins", count=count)


# --- Payments ---

@router.post("/create-connect-account", response_model=ConnectAccountResult)
async def create_connect_account(body: ConnectAccountRequest, request: Request,
                                 identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await payments.create_connect_account(
        db, identity, body.account_type, body.business_name, origin=request_origin(request)
    )


@router.post("/check-connect-status", response_model=ConnectStatus)
async def check_connect_status(identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await payments.check_connect_status(db, identity)


@router.post("/create-booking-payment", response_model=CheckoutResult)
async def create_booking_payment(body: BookingPaymentRequest, request: Request,
                                 identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await payments.create_booking_payment(
        db, identity, body.booking_request_id, origin=request_origin(request)
    )


@router.post("/verify-booking-payment", response_model=PaymentVerification)
async def verify_booking_payment(body: PaymentVerificationRequest):
    return await payments.verify_booking_payment(body.session_id)


@router.post("/cabins/{cabin_id}/online-payments", response_model=CabinOut)
async def set_online_payments(cabin_id: int, body: OnlinePaymentsRequest,
                              identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await payments.set_online_payments(db, identity, cabin_id, body.enabled)


@router.post("/cabins/{cabin_id}/verification-transfer", response_model=CabinOut)
async def verification_transfer_sent(cabin_id: int, body: VerificationTransferRequest,
                                     identity: Identity = Depends(get_identity), db: AsyncSession = Depends(get_db)):
    return await payments.mark_verification_transfer_sent(db, identity, cabin_id, body.terms_accepted)


@router.post("/cabins/{cabin_id}/manual-payment/approve", response_model=CabinOut)
async def approve_manual_payment(cabin_id: int, identity: Identity = Depends(get_identity),
                                 db: AsyncSession = Depends(get_db)):
    return await payments.approve_manual_payment(db, identity, cabin_id)


# --- Calendars ---

@router.post("/sync-ical-calendar")
async def sync_ical_calendar(body: FeedRequest, db: AsyncSession = Depends(get_db)):
    if body.test_only:
        if not body.ical_url:
            raise ValidationError("Invalid URL format")
        return await calendar_sync.test_feed(body.ical_url)
    if body.ical_url:
        return await calendar_sync.preview_feed(body.ical_url)
    if body.cabin_id is not None:
        return await calendar_sync.preview_cabin_feed(db, body.cabin_id)
    return {"dates": [], "events": [], "events_count": 0}


@router.post("/sync-all-calendars", response_model=SyncAllResult)
async def sync_all_calendars(identity: Identity = Depends(require_service_role), db: AsyncSession = Depends(get_db)):
    reports = await calendar_sync.sync_all_calendars(db=db)
    success_count = sum(1 for r in reports if r.success)
    return SyncAllResult(message=f"Synced {success_count}/{len(reports)} calendars", results=reports)


# --- Misc ---

@router.post("/analyze-offgrid", response_model=OffGridScoreOut)
async def analyze_offgrid(body: OffGridRequest, identity: Identity = Depends(get_identity)):
    return await offgrid.analyze_offgrid(identity, body.latitude, body.longitude)


@router.get("/sitemap.xml")
async def sitemap_xml(db: AsyncSession = Depends(get_db)):
    return Response(await sitemap.build_sitemap(db), media_type="application/xml")


@router.post("/notify-admin-new-user")
async def notify_admin_new_user(body: NewUserNotice, identity: Identity = Depends(get_identity),
                                db: AsyncSession = Depends(get_db)):
    sent = await contact.notify_admin_new_user(db, identity, body.role)
    return {"success": sent}


@router.get("/og-metadata")
async def og_metadata_page(request: Request, path: str = "", db: AsyncSession = Depends(get_db)):
    page = await og_metadata.build_og_metadata(db, path, request.headers.get("user-agent"))
    if page.html is not None:
        return HTMLResponse(page.html)
    return page.data


@router.post("/optimize-image", response_model=ImageOptimizeResult)
async def optimize_image(body: ImageOptimizeRequest, identity: Identity = Depends(get_identity)):
    return await images.optimize_image(identity, body.image_base64, body.file_name, body.mime_type)


@router.post("/send-contact-email")
async def send_contact_email(body: ContactRequest):
    await contact.send_contact_email(body.name, body.email, body.subject, body.message)
    return {"success": True}


@router.post("/newsletter")
async def newsletter(body: NewsletterRequest, db: AsyncSession = Depends(get_db)):
    created = await contact.subscribe_newsletter(db, body.email)
    return {"success": True, "subscribed": created}
