# FILE: app/schemas.py
# ==============================================================================
# Request/response models. Aggregates such as BookingRequestDetail are built by
# explicit queries in the service modules, never by merging loose dicts.
# ==============================================================================
import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import AppRole, BookingRequestStatus, CabinCategory, CabinStatus, FeeUnit, StripeAccountType


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Listings ---

class ExtraFee(BaseModel):
    id: Optional[str] = None
    name: str
    amount: int = 0
    unit: FeeUnit = FeeUnit.ONE_TIME
    enabled: bool = True


class CabinImage(BaseModel):
    id: Optional[str] = None
    url: str
    alt: str = ""
    is_main: bool = False


class CabinOut(ORMModel):
    id: int
    slug: str
    owner_id: str
    title: str
    description: Optional[str] = None
    address: Optional[str] = None
    voivodeship: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    price_per_night: int
    min_nights: int
    max_guests: int
    bedrooms: int
    bathrooms: int
    area_sqm: Optional[int] = None
    pets_allowed: bool
    amenities: List[str] = []
    category: CabinCategory
    extra_fees: List[ExtraFee] = []
    images: List[CabinImage] = []
    light_pollution: int
    building_density: int
    road_density: int
    distance_to_buildings: int
    off_grid_total: float
    status: CabinStatus
    is_featured: bool
    last_minute_dates: List[datetime.date] = []
    online_payments_enabled: bool
    last_ical_sync: Optional[datetime.datetime] = None


class CabinCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    address: Optional[str] = None
    voivodeship: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    price_per_night: int = Field(gt=0)
    min_nights: int = Field(default=1, ge=1)
    max_guests: int = Field(default=2, ge=1)
    bedrooms: int = Field(default=1, ge=0)
    bathrooms: int = Field(default=1, ge=0)
    area_sqm: Optional[int] = Field(default=None, gt=0)
    pets_allowed: bool = False
    amenities: List[str] = []
    category: CabinCategory = CabinCategory.DOMEK
    extra_fees: List[ExtraFee] = []
    images: List[CabinImage] = []
    light_pollution: int = Field(default=5, ge=1, le=10)
    building_density: int = Field(default=5, ge=1, le=10)
    road_density: int = Field(default=5, ge=1, le=10)
    distance_to_buildings: int = Field(default=5, ge=1, le=10)
    ical_url: Optional[str] = None


class CabinUpdate(BaseModel):
    """Partial edit; only the fields sent are changed."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    address: Optional[str] = None
    voivodeship: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    price_per_night: Optional[int] = Field(default=None, gt=0)
    min_nights: Optional[int] = Field(default=None, ge=1)
    max_guests: Optional[int] = Field(default=None, ge=1)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[int] = Field(default=None, ge=0)
    area_sqm: Optional[int] = Field(default=None, gt=0)
    pets_allowed: Optional[bool] = None
    amenities: Optional[List[str]] = None
    category: Optional[CabinCategory] = None
    extra_fees: Optional[List[ExtraFee]] = None
    images: Optional[List[CabinImage]] = None
    light_pollution: Optional[int] = Field(default=None, ge=1, le=10)
    building_density: Optional[int] = Field(default=None, ge=1, le=10)
    road_density: Optional[int] = Field(default=None, ge=1, le=10)
    distance_to_buildings: Optional[int] = Field(default=None, ge=1, le=10)
    ical_url: Optional[str] = None
    last_minute_dates: Optional[List[datetime.date]] = None


class CabinStatusChange(BaseModel):
    status: CabinStatus


class FeeLineOut(BaseModel):
    name: str
    unit: FeeUnit
    amount: int
    total: int


class QuoteOut(BaseModel):
    nights: int
    price_per_night: int
    accommodation_total: int
    fees: List[FeeLineOut]
    extra_fees_total: int
    total: int


# --- Booking requests ---

class AnonymousGuest(BaseModel):
    name: str = "Gość"
    email: str
    phone: str


class BookingRequestCreate(BaseModel):
    cabin_id: int
    start_date: datetime.date
    end_date: datetime.date
    guests_count: int = Field(ge=1)
    message: Optional[str] = None
    guest: Optional[AnonymousGuest] = None


class BookingRequestOut(ORMModel):
    id: Optional[int] = None
    cabin_id: int
    guest_id: Optional[str] = None
    host_id: str
    start_date: datetime.date
    end_date: datetime.date
    guests_count: int
    message: Optional[str] = None
    status: BookingRequestStatus
    created_at: Optional[datetime.datetime] = None


class BookingRequestDetail(BookingRequestOut):
    cabin_title: str
    cabin_slug: str
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    host_name: Optional[str] = None


class StatusChange(BaseModel):
    status: BookingRequestStatus
    comment: Optional[str] = None


class ChatMessageCreate(BaseModel):
    message: str


class ChatMessageOut(ORMModel):
    id: int
    booking_request_id: int
    sender_id: str
    message: str
    created_at: datetime.datetime


# --- Calendar ---

class FeedRequest(BaseModel):
    ical_url: Optional[str] = None
    cabin_id: Optional[int] = None
    test_only: bool = False


class FeedTestResult(BaseModel):
    success: bool
    events_count: int = 0
    error: Optional[str] = None


class FeedEventOut(BaseModel):
    start_date: datetime.date
    end_date: datetime.date
    summary: Optional[str] = None


class FeedPreview(BaseModel):
    dates: List[datetime.date] = []
    events: List[FeedEventOut] = []
    events_count: int = 0


class SyncReport(BaseModel):
    cabin_id: int
    title: str
    success: bool
    dates_count: Optional[int] = None
    error: Optional[str] = None


class SyncAllResult(BaseModel):
    message: str
    results: List[SyncReport]


class SweepResult(BaseModel):
    message: str
    count: int


# --- Payments ---

class ConnectAccountRequest(BaseModel):
    account_type: str
    business_name: Optional[str] = None


class ConnectAccountResult(BaseModel):
    url: str
    account_id: str


class ConnectStatus(BaseModel):
    has_account: bool
    onboarding_completed: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    stripe_account_id: Optional[str] = None
    account_type: Optional[StripeAccountType] = None
    business_name: Optional[str] = None


class BookingPaymentRequest(BaseModel):
    booking_request_id: int


class CheckoutResult(BaseModel):
    url: str
    session_id: str
    total_amount: int
    platform_fee: float
    host_amount: float


class PaymentVerificationRequest(BaseModel):
    session_id: str
    booking_request_id: Optional[int] = None


class PaymentVerification(BaseModel):
    success: bool
    paid: bool
    status: Optional[str] = None
    booking_id: Optional[str] = None
    platform_fee: Optional[str] = None
    host_amount: Optional[str] = None
    total_amount: Optional[str] = None


class VerificationTransferRequest(BaseModel):
    terms_accepted: bool = False


class OnlinePaymentsRequest(BaseModel):
    enabled: bool


# --- Misc ---

class OffGridRequest(BaseModel):
    latitude: float
    longitude: float


class OffGridScoreOut(BaseModel):
    total: int
    light_pollution: int
    building_density: int
    road_density: int


class ImageOptimizeRequest(BaseModel):
    image_base64: str
    file_name: str
    mime_type: Optional[str] = None


class ImageOptimizeResult(BaseModel):
    public_url: str
    original_size: int
    optimized_size: int
    reduction: int


class ContactRequest(BaseModel):
    name: str
    email: str
    subject: str
    message: str


class NewsletterRequest(BaseModel):
    email: str


class NewUserNotice(BaseModel):
    role: AppRole = AppRole.GUEST
