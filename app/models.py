# FILE: app/models.py
# ==============================================================================
# Table models for the marketplace. All status columns use strict Enum types
# stored as strings so both Postgres and SQLite accept them.
# ==============================================================================
import enum
import datetime
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .database import Base


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# --- ENUM DEFINITIONS ---

class AppRole(str, enum.Enum):
    ADMIN = "admin"
    HOST = "host"
    GUEST = "guest"

class CabinStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"

class BookingRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class CabinCategory(str, enum.Enum):
    DOMEK = "domek"
    CAMPING = "camping"
    JURTA = "jurta"
    GLAMPING = "glamping"

class FeeUnit(str, enum.Enum):
    PER_DAY = "per_day"
    ONE_TIME = "one_time"

class StripeAccountType(str, enum.Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"


# --- TABLE MODELS ---

class Profile(Base):
    __tablename__ = "profiles"
    id = Column(String(64), primary_key=True)
    email = Column(String(320), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class UserRoleAssignment(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    role = Column(SAEnum(AppRole, native_enum=False), nullable=False)


class Cabin(Base):
    __tablename__ = "cabins"
    id = Column(Integer, primary_key=True)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    owner_id = Column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String(512), nullable=True)
    voivodeship = Column(String(64), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    price_per_night = Column(Integer, nullable=False)
    min_nights = Column(Integer, default=1, nullable=False)
    max_guests = Column(Integer, default=2, nullable=False)
    bedrooms = Column(Integer, default=1, nullable=False)
    bathrooms = Column(Integer, default=1, nullable=False)
    area_sqm = Column(Integer, nullable=True)
    pets_allowed = Column(Boolean, default=False, nullable=False)
    amenities = Column(JSON, default=list, nullable=False)
    category = Column(
        SAEnum(CabinCategory, native_enum=False),
        default=CabinCategory.DOMEK,
        nullable=False,
    )
    extra_fees = Column(JSON, default=list, nullable=False)
    images = Column(JSON, default=list, nullable=False)

    # Off-grid sub-scores, 1-10, higher means more remote
    light_pollution = Column(Integer, default=5, nullable=False)
    building_density = Column(Integer, default=5, nullable=False)
    road_density = Column(Integer, default=5, nullable=False)
    distance_to_buildings = Column(Integer, default=5, nullable=False)
    off_grid_total = Column(Float, default=5.0, nullable=False)

    status = Column(
        SAEnum(CabinStatus, native_enum=False),
        default=CabinStatus.PENDING,
        nullable=False,
        index=True,
    )
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    is_featured = Column(Boolean, default=False, nullable=False)
    ical_url = Column(String(2048), nullable=True)
    last_ical_sync = Column(DateTime(timezone=True), nullable=True)
    last_minute_dates = Column(JSON, default=list, nullable=False)

    online_payments_enabled = Column(Boolean, default=False, nullable=False)
    verification_transfer_sent = Column(Boolean, default=False, nullable=False)
    manual_payment_verified = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("Profile")
    booking_requests = relationship(
        "BookingRequest", back_populates="cabin", cascade="all, delete-orphan"
    )
    cached_dates = relationship(
        "CachedCalendarDate", back_populates="cabin", cascade="all, delete-orphan"
    )


class BookingRequest(Base):
    __tablename__ = "booking_requests"
    id = Column(Integer, primary_key=True, index=True)
    cabin_id = Column(Integer, ForeignKey("cabins.id"), nullable=False, index=True)
    guest_id = Column(String(64), ForeignKey("profiles.id"), nullable=True, index=True)
    host_id = Column(String(64), ForeignKey("profiles.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    guests_count = Column(Integer, nullable=False)
    message = Column(Text, nullable=True)
    status = Column(
        SAEnum(BookingRequestStatus, native_enum=False),
        default=BookingRequestStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    cabin = relationship("Cabin", back_populates="booking_requests")
    messages = relationship(
        "ChatMessage", back_populates="booking_request", cascade="all, delete-orphan"
    )


class CachedCalendarDate(Base):
    __tablename__ = "cached_calendar_dates"
    id = Column(Integer, primary_key=True)
    cabin_id = Column(Integer, ForeignKey("cabins.id"), nullable=False, index=True)
    blocked_date = Column(Date, nullable=False, index=True)
    source = Column(String(32), default="ical", nullable=False)
    synced_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    cabin = relationship("Cabin", back_populates="cached_dates")


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    id = Column(Integer, primary_key=True)
    booking_request_id = Column(Integer, ForeignKey("booking_requests.id"), nullable=False, index=True)
    sender_id = Column(String(64), ForeignKey("profiles.id"), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    booking_request = relationship("BookingRequest", back_populates="messages")


class HostStripeAccount(Base):
    __tablename__ = "host_stripe_accounts"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("profiles.id"), unique=True, nullable=False)
    stripe_account_id = Column(String(255), nullable=True)
    account_type = Column(SAEnum(StripeAccountType, native_enum=False), nullable=False)
    business_name = Column(String(255), nullable=True)
    charges_enabled = Column(Boolean, default=False, nullable=False)
    payouts_enabled = Column(Boolean, default=False, nullable=False)
    onboarding_completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class NewsletterSubscriber(Base):
    __tablename__ = "newsletter_subscribers"
    id = Column(Integer, primary_key=True)
    email = Column(String(320), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
