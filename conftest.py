"""
Shared test fixtures.

Settings are put into the environment before anything under app/ is imported,
because app.config validates them at import time.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-that-is-long-enough"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-role-key"
os.environ["SUPABASE_URL"] = "https://project.supabase.test"
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("RUN_SCHEDULER", None)

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models, notifications
from app.database import Base
from app.errors import UpstreamError
from app.security import Identity


class FakeMailer:
    """Records messages instead of calling the email API."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, message):
        if self.fail:
            raise UpstreamError("Email delivery failed: 500")
        self.sent.append(message)
        return f"email-{len(self.sent)}"

    def to(self, address):
        return [m for m in self.sent if address in m.to]


@pytest.fixture
async def db():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture(autouse=True)
def mailer(monkeypatch):
    fake = FakeMailer()
    monkeypatch.setattr(notifications, "mailer", fake)
    return fake


@pytest.fixture
async def host(db):
    profile = models.Profile(id="host-1", email="host@example.com", name="Anna")
    db.add(profile)
    db.add(models.UserRoleAssignment(user_id="host-1", role=models.AppRole.HOST))
    await db.commit()
    return profile


@pytest.fixture
async def guest(db):
    profile = models.Profile(id="guest-1", email="guest@example.com", name="Piotr", phone="+48 600 100 200")
    db.add(profile)
    await db.commit()
    return profile


@pytest.fixture
def host_identity(host):
    return Identity(user_id=host.id, email=host.email, roles=frozenset({models.AppRole.HOST}))


@pytest.fixture
def guest_identity(guest):
    return Identity(user_id=guest.id, email=guest.email)


@pytest.fixture
def admin_identity():
    return Identity(user_id="admin-1", email="admin@example.com", roles=frozenset({models.AppRole.ADMIN}))


@pytest.fixture
def make_cabin(db, host):
    counter = {"n": 0}

    async def _make(**overrides):
        counter["n"] += 1
        values = dict(
            slug=f"lesna-chata-{counter['n']}",
            owner_id=host.id,
            title="Leśna Chata",
            description="Drewniany domek nad jeziorem.",
            voivodeship="warmińsko-mazurskie",
            price_per_night=400,
            min_nights=1,
            max_guests=4,
            bedrooms=2,
            bathrooms=1,
            amenities=["wifi"],
            extra_fees=[],
            images=[],
            last_minute_dates=[],
            status=models.CabinStatus.ACTIVE,
        )
        values.update(overrides)
        cabin = models.Cabin(**values)
        db.add(cabin)
        await db.commit()
        await db.refresh(cabin)
        return cabin

    return _make


@pytest.fixture
async def cabin(make_cabin):
    return await make_cabin()


@pytest.fixture
def make_request(db, guest):
    async def _make(cabin, start_date, end_date, status=models.BookingRequestStatus.PENDING,
                    guest_id=None, created_at=None, guests_count=2):
        request = models.BookingRequest(
            cabin_id=cabin.id,
            guest_id=guest_id or guest.id,
            host_id=cabin.owner_id,
            start_date=start_date,
            end_date=end_date,
            guests_count=guests_count,
            status=status,
        )
        if created_at is not None:
            request.created_at = created_at
        db.add(request)
        await db.commit()
        await db.refresh(request)
        return request

    return _make


def ical_document(*events):
    """Builds a minimal feed; each event is (start, end) as YYYYMMDD strings."""
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//Feed//EN"]
    for i, (start, end) in enumerate(events):
        lines += [
            "BEGIN:VEVENT",
            f"UID:event-{i}@example.com",
            "DTSTAMP:20250101T000000Z",
            f"DTSTART;VALUE=DATE:{start}",
            f"DTEND;VALUE=DATE:{end}",
            "SUMMARY:Reserved",
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


@pytest.fixture
def feed():
    return ical_document

