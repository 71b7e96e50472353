# FILE: app/cabins.py
# ==============================================================================
# Listing administration: owner create/edit, moderation, renewal, the 60-day
# expiry sweep and public listing reads.
# ==============================================================================
import datetime
import logging
import re
import unicodedata
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, ical_feed, models, notifications
from .errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from .schemas import CabinCreate, CabinUpdate
from .security import Identity, ensure_admin, ensure_user
from .utils.db_manager import db_session_manager


def normalise_images(images: Optional[List[dict]]) -> List[dict]:
    """Keeps at most one main image; the first flagged one wins."""
    result = []
    main_seen = False
    for image in images or []:
        image = dict(image)
        if image.get("is_main") and not main_seen:
            main_seen = True
        else:
            image["is_main"] = False
        result.append(image)
    return result


def main_image_url(images: Optional[List[dict]]) -> Optional[str]:
    images = images or []
    for image in images:
        if image.get("is_main"):
            return image.get("url")
    return images[0].get("url") if images else None


def compute_off_grid_total(light_pollution: int, building_density: int, road_density: int,
                           distance_to_buildings: int) -> float:
    """Mean of the four 1-10 sub-scores, one decimal place."""
    scores = [light_pollution, building_density, road_density, distance_to_buildings]
    return round(sum(scores) / len(scores), 1)


async def get_cabin_or_404(db: AsyncSession, cabin_id: int) -> models.Cabin:
    cabin = await db.get(models.Cabin, cabin_id)
    if not cabin:
        raise NotFoundError("Cabin not found")
    return cabin


def ensure_owner(identity: Identity, cabin: models.Cabin) -> Identity:
    identity = ensure_user(identity)
    if cabin.owner_id != identity.user_id:
        raise AuthorizationError("Only the owner of this listing can do that")
    return identity


POLISH_CHARS = str.maketrans("ąćęłńóśźżĄĆĘŁŃÓŚŹŻ", "acelnoszzACELNOSZZ")
SCORE_FIELDS = ("light_pollution", "building_density", "road_density", "distance_to_buildings")
NULLABLE_FIELDS = {"description", "address", "voivodeship", "latitude", "longitude", "area_sqm"}


def slugify(title: str) -> str:
    text = unicodedata.normalize("NFKD", title.translate(POLISH_CHARS))
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    return re.sub(r"[^a-z0-9]+", "-", text).strip("-") or "domek"


async def unique_slug(db: AsyncSession, title: str) -> str:
    base = slugify(title)
    result = await db.execute(
        select(models.Cabin.slug).where(or_(models.Cabin.slug == base, models.Cabin.slug.like(f"{base}-%")))
    )
    taken = set(result.scalars().all())
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def _clean_ical_url(url: Optional[str]) -> Optional[str]:
    if not url or not url.strip():
        return None
    return ical_feed.validate_feed_url(url)


async def create_cabin(db: AsyncSession, identity: Identity, data: CabinCreate) -> models.Cabin:
    """New listings always start pending and wait for admin review."""
    identity = ensure_user(identity)
    values = data.model_dump(exclude={"images", "extra_fees", "ical_url"})
    cabin = models.Cabin(
        **values,
        slug=await unique_slug(db, data.title),
        owner_id=identity.user_id,
        images=normalise_images([image.model_dump(mode="json") for image in data.images]),
        extra_fees=[fee.model_dump(mode="json") for fee in data.extra_fees],
        ical_url=_clean_ical_url(data.ical_url),
        off_grid_total=compute_off_grid_total(*(getattr(data, name) for name in SCORE_FIELDS)),
        status=models.CabinStatus.PENDING,
        is_featured=False,
    )
    db.add(cabin)
    await db.commit()
    await db.refresh(cabin)
    logging.info(f"CABINS: Cabin {cabin.id} ('{cabin.slug}') created by {identity.user_id}.")
    return cabin


async def update_cabin(db: AsyncSession, identity: Identity, cabin_id: int, data: CabinUpdate) -> models.Cabin:
    cabin = await get_cabin_or_404(db, cabin_id)
    ensure_owner(identity, cabin)
    changes = data.model_dump(exclude_unset=True, exclude={"images", "extra_fees", "ical_url", "last_minute_dates"})
    for name, value in changes.items():
        if value is None and name not in NULLABLE_FIELDS:
            raise ValidationError(f"{name} cannot be empty")
        setattr(cabin, name, value)

    fields = data.model_fields_set
    if "images" in fields:
        cabin.images = normalise_images([image.model_dump(mode="json") for image in data.images or []])
    if "extra_fees" in fields:
        cabin.extra_fees = [fee.model_dump(mode="json") for fee in data.extra_fees or []]
    if "ical_url" in fields:
        cabin.ical_url = _clean_ical_url(data.ical_url)
    if "last_minute_dates" in fields:
        cabin.last_minute_dates = [day.isoformat() for day in data.last_minute_dates or []]
    if fields.intersection(SCORE_FIELDS):
        cabin.off_grid_total = compute_off_grid_total(*(getattr(cabin, name) for name in SCORE_FIELDS))

    await db.commit()
    await db.refresh(cabin)
    logging.info(f"CABINS: Cabin {cabin.id} updated by {identity.user_id} ({', '.join(sorted(fields)) or 'no fields'}).")
    return cabin


async def get_active_cabin_by_slug(db: AsyncSession, slug: str) -> models.Cabin:
    result = await db.execute(
        select(models.Cabin).where(models.Cabin.slug == slug, models.Cabin.status == models.CabinStatus.ACTIVE)
    )
    cabin = result.scalar_one_or_none()
    if not cabin:
        raise NotFoundError("Cabin not found")
    return cabin


async def get_active_cabin(db: AsyncSession, cabin_id: int) -> models.Cabin:
    cabin = await db.get(models.Cabin, cabin_id)
    if not cabin or cabin.status != models.CabinStatus.ACTIVE:
        raise NotFoundError("Cabin not found")
    return cabin


async def list_active_cabins(db: AsyncSession, max_price: Optional[int] = None, min_guests: Optional[int] = None,
                             min_score: Optional[float] = None, category: Optional[models.CabinCategory] = None,
                             voivodeship: Optional[str] = None) -> List[models.Cabin]:
    stmt = select(models.Cabin).where(models.Cabin.status == models.CabinStatus.ACTIVE)
    if max_price is not None:
        stmt = stmt.where(models.Cabin.price_per_night <= max_price)
    if min_guests is not None:
        stmt = stmt.where(models.Cabin.max_guests >= min_guests)
    if min_score is not None:
        stmt = stmt.where(models.Cabin.off_grid_total >= min_score)
    if category is not None:
        stmt = stmt.where(models.Cabin.category == category)
    if voivodeship:
        stmt = stmt.where(models.Cabin.voivodeship == voivodeship)
    stmt = stmt.order_by(models.Cabin.is_featured.desc(), models.Cabin.off_grid_total.desc(), models.Cabin.id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def set_cabin_status(db: AsyncSession, identity: Identity, cabin_id: int,
                           status: models.CabinStatus, now: Optional[datetime.datetime] = None) -> models.Cabin:
    """Admin moderation. Activating starts a fresh listing period."""
    ensure_admin(identity)
    status = models.CabinStatus(status)
    cabin = await get_cabin_or_404(db, cabin_id)
    now = now or models.utcnow()

    cabin.status = status
    if status == models.CabinStatus.ACTIVE:
        cabin.expires_at = now + datetime.timedelta(days=config.CABIN_ACTIVE_DAYS)
    await db.commit()
    await db.refresh(cabin)
    logging.info(f"CABINS: Cabin {cabin.id} set to {status.value} by {identity.user_id or 'service'}.")

    if status in (models.CabinStatus.ACTIVE, models.CabinStatus.REJECTED):
        host = await db.get(models.Profile, cabin.owner_id)
        if host and host.email:
            await notifications.dispatch(notifications.format_cabin_status_to_host(
                host.email, host.name, cabin.title, active=status == models.CabinStatus.ACTIVE,
            ))
    return cabin


async def renew_cabin(db: AsyncSession, identity: Identity, cabin_id: int) -> models.Cabin:
    cabin = await get_cabin_or_404(db, cabin_id)
    ensure_owner(identity, cabin)
    if cabin.status == models.CabinStatus.ACTIVE:
        raise InvalidStateError("Listing is still active")
    cabin.status = models.CabinStatus.PENDING
    await db.commit()
    await db.refresh(cabin)
    logging.info(f"CABINS: Cabin {cabin.id} resubmitted for review.")
    return cabin


async def notify_admin_new_cabin(db: AsyncSession, identity: Identity, cabin_id: int) -> bool:
    cabin = await get_cabin_or_404(db, cabin_id)
    ensure_owner(identity, cabin)
    if cabin.status != models.CabinStatus.PENDING:
        raise ValidationError("Only listings awaiting review are announced")
    host = await db.get(models.Profile, cabin.owner_id)
    return await notifications.dispatch(notifications.format_new_cabin_to_admin(
        cabin.title, cabin.address,
        host.email if host else None,
        host.name if host else None,
    ))


@db_session_manager
async def expire_stale_cabins(now: Optional[datetime.datetime] = None, *, db: AsyncSession) -> int:
    """Moves active listings past their expiry back to pending and tells the host."""
    now = now or models.utcnow()
    logging.info("SWEEPER: Starting expired cabins check...")

    result = await db.execute(
        select(models.Cabin.id).where(
            models.Cabin.status == models.CabinStatus.ACTIVE,
            models.Cabin.expires_at.is_not(None),
            models.Cabin.expires_at < now,
        )
    )
    stale_ids = list(result.scalars().all())
    logging.info(f"SWEEPER: Found {len(stale_ids)} expired cabins.")

    expired = 0
    for cabin_id in stale_ids:
        try:
            update_result = await db.execute(
                update(models.Cabin)
                .where(models.Cabin.id == cabin_id, models.Cabin.status == models.CabinStatus.ACTIVE)
                .values(status=models.CabinStatus.PENDING, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception as e:
            await db.rollback()
            logging.error(f"SWEEPER: Error updating cabin {cabin_id}.", exc_info=e)
            continue
        if update_result.rowcount != 1:
            continue
        expired += 1

        row = (await db.execute(
            select(models.Cabin.title, models.Profile.email, models.Profile.name)
            .join(models.Profile, models.Profile.id == models.Cabin.owner_id)
            .where(models.Cabin.id == cabin_id)
        )).first()
        if row and row.email:
            await notifications.dispatch(notifications.format_cabin_expired_to_host(row.email, row.name, row.title))
        logging.info(f"SWEEPER: Cabin {cabin_id} expired and moved back to pending.")

    return expired
