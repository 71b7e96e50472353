# FILE: app/contact.py
# ==============================================================================
# Public contact form, newsletter sign-up and sign-up notices for the admin.
# ==============================================================================
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import models, notifications
from .booking_requests import EMAIL_RE
from .errors import ValidationError
from .security import Identity, ensure_user


def _clean_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Nieprawidłowy adres email.")
    return email


async def send_contact_email(name: str, email: str, subject: str, message: str) -> None:
    """Forwards a contact form submission. The email is the whole effect, so failures raise."""
    if not all(part and part.strip() for part in (name, email, subject, message)):
        raise ValidationError("Wszystkie pola są wymagane.")
    email = _clean_email(email)
    await notifications.send(notifications.format_contact_message(name.strip(), email, subject.strip(), message.strip()))
    logging.info(f"CONTACT: Message from {email} forwarded.")


async def subscribe_newsletter(db: AsyncSession, email: str) -> bool:
    """Returns True for a new subscriber, False when the address was already on the list."""
    email = _clean_email(email)
    existing = await db.execute(
        select(models.NewsletterSubscriber.id).where(models.NewsletterSubscriber.email == email)
    )
    if existing.scalar_one_or_none() is not None:
        return False
    db.add(models.NewsletterSubscriber(email=email))
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent sign-up for the same address.
        await db.rollback()
        return False
    logging.info(f"NEWSLETTER: New subscriber {email}.")
    return True


async def notify_admin_new_user(db: AsyncSession, identity: Identity, role: models.AppRole) -> bool:
    """Tells the admin about a fresh sign-up, using the stored profile rather than client-sent details."""
    identity = ensure_user(identity)
    if role == models.AppRole.ADMIN:
        raise ValidationError("Role must be guest or host")
    profile = await db.get(models.Profile, identity.user_id)
    email = (profile.email if profile else None) or identity.email
    if not email:
        raise ValidationError("User has no email address")
    logging.info(f"CONTACT: New {role.value} registration: {email}.")
    return await notifications.dispatch(notifications.format_new_user_to_admin(
        email,
        profile.name if profile else None,
        profile.phone if profile else None,
        is_host=role == models.AppRole.HOST,
    ))
