# FILE: app/payments.py
# ==============================================================================
# Payment settlement adapters.
#
# Stripe Connect: hosts onboard an Express account; guests pay through Checkout
# and the platform keeps an application fee while the rest is transferred to
# the host. Manual path: the host proves account ownership with a small
# verification transfer which an admin approves.
# ==============================================================================
import logging
from typing import Any, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import config, models, notifications, pricing
from .booking_requests import get_booking_request
from .cabins import ensure_owner, get_cabin_or_404
from .errors import (
    AuthorizationError,
    ConfigurationError,
    InvalidStateError,
    UpstreamError,
    ValidationError,
)
from .schemas import CheckoutResult, ConnectAccountResult, ConnectStatus, PaymentVerification
from .security import Identity, ensure_admin, ensure_user


def _configure_stripe() -> None:
    if not config.STRIPE_SECRET_KEY:
        raise ConfigurationError("STRIPE_SECRET_KEY is not set")
    stripe.api_key = config.STRIPE_SECRET_KEY


def _stripe_error(e: stripe.StripeError) -> UpstreamError:
    message = getattr(e, "user_message", None) or str(e) or "Stripe request failed"
    logging.error(f"PAYMENT: Stripe call failed: {message}")
    return UpstreamError(message)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Reads a field from a Stripe object or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


async def get_host_account(db: AsyncSession, user_id: str) -> Optional[models.HostStripeAccount]:
    result = await db.execute(
        select(models.HostStripeAccount).where(models.HostStripeAccount.user_id == user_id)
    )
    return result.scalar_one_or_none()


def host_can_accept_online(account: Optional[models.HostStripeAccount]) -> bool:
    return bool(account and account.stripe_account_id and account.charges_enabled)


# --- Stripe Connect ---

async def create_connect_account(db: AsyncSession, identity: Identity, account_type: str,
                                 business_name: Optional[str] = None,
                                 origin: str = config.SITE_URL) -> ConnectAccountResult:
    identity = ensure_user(identity)
    if account_type not in (models.StripeAccountType.INDIVIDUAL.value, models.StripeAccountType.COMPANY.value):
        raise ValidationError("Invalid account type")
    _configure_stripe()

    existing = await get_host_account(db, identity.user_id)
    try:
        if existing and existing.stripe_account_id:
            account_id = existing.stripe_account_id
            logging.info(f"PAYMENT: Reusing Stripe account {account_id} for host {identity.user_id}.")
        else:
            business_profile = {"url": config.SITE_URL}
            if business_name:
                business_profile["name"] = business_name
            account = await stripe.Account.create_async(
                type="express",
                country="PL",
                email=identity.email,
                business_type=account_type,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                business_profile=business_profile,
            )
            account_id = account.id
            if existing is None:
                existing = models.HostStripeAccount(user_id=identity.user_id)
                db.add(existing)
            existing.stripe_account_id = account_id
            existing.account_type = models.StripeAccountType(account_type)
            existing.business_name = business_name or None
            existing.onboarding_completed = False
            existing.charges_enabled = False
            existing.payouts_enabled = False
            await db.commit()
            logging.info(f"PAYMENT: Created Stripe account {account_id} for host {identity.user_id}.")

        link = await stripe.AccountLink.create_async(
            account=account_id,
            refresh_url=f"{origin}/host/dashboard?stripe_refresh=true",
            return_url=f"{origin}/host/dashboard?stripe_onboarding=complete",
            type="account_onboarding",
        )
    except stripe.StripeError as e:
        raise _stripe_error(e)
    return ConnectAccountResult(url=link.url, account_id=account_id)


async def check_connect_status(db: AsyncSession, identity: Identity) -> ConnectStatus:
    identity = ensure_user(identity)
    account = await get_host_account(db, identity.user_id)
    if not account or not account.stripe_account_id:
        return ConnectStatus(has_account=False)

    _configure_stripe()
    try:
        remote = await stripe.Account.retrieve_async(account.stripe_account_id)
    except stripe.StripeError as e:
        raise _stripe_error(e)

    account.charges_enabled = bool(_field(remote, "charges_enabled", False))
    account.payouts_enabled = bool(_field(remote, "payouts_enabled", False))
    account.onboarding_completed = bool(_field(remote, "details_submitted", False))
    await db.commit()
    logging.info(
        f"PAYMENT: Host {identity.user_id} status: charges={account.charges_enabled}, "
        f"payouts={account.payouts_enabled}, onboarding={account.onboarding_completed}."
    )
    return ConnectStatus(
        has_account=True,
        onboarding_completed=account.onboarding_completed,
        charges_enabled=account.charges_enabled,
        payouts_enabled=account.payouts_enabled,
        stripe_account_id=account.stripe_account_id,
        account_type=account.account_type,
        business_name=account.business_name,
    )


async def create_booking_payment(db: AsyncSession, identity: Identity, booking_request_id: int,
                                 origin: str = config.SITE_URL) -> CheckoutResult:
    """
    Opens a Checkout session for an approved request.

    The amount is recomputed from the listing's current price and fees. The
    platform fee is taken as a Connect application fee and the remainder is
    transferred to the host's account.
    """
    identity = ensure_user(identity)
    request = await get_booking_request(db, booking_request_id)
    if request.guest_id != identity.user_id:
        raise AuthorizationError("Only the guest of this request can pay for it")
    if request.status != models.BookingRequestStatus.APPROVED:
        raise InvalidStateError("Booking request must be approved before payment")

    cabin = await get_cabin_or_404(db, request.cabin_id)
    if not cabin.online_payments_enabled:
        raise ConfigurationError("Online payments are not enabled for this cabin")
    host_account = await get_host_account(db, request.host_id)
    if not host_account or not host_account.stripe_account_id:
        raise ConfigurationError("Host nie ma skonfigurowanych płatności online")
    if not host_account.charges_enabled:
        raise ConfigurationError("Konto hosta nie jest jeszcze aktywne do przyjmowania płatności")

    _configure_stripe()
    quote = pricing.quote_for_cabin(cabin, request.start_date, request.end_date)
    split = pricing.split_payment(quote.total)
    logging.info(
        f"PAYMENT: Request {request.id}: total {split.total_grosze} gr, "
        f"fee {split.platform_fee_grosze} gr, host {split.host_amount_grosze} gr."
    )

    try:
        session = await stripe.checkout.Session.create_async(
            customer_email=identity.email,
            line_items=[{
                "price_data": {
                    "currency": config.CURRENCY,
                    "product_data": {
                        "name": f"Rezerwacja: {cabin.title}",
                        "description": (
                            f"{quote.nights} nocy ({request.start_date.isoformat()} - "
                            f"{request.end_date.isoformat()}), {request.guests_count} gości"
                        ),
                    },
                    "unit_amount": split.total_grosze,
                },
                "quantity": 1,
            }],
            mode="payment",
            success_url=f"{origin}/booking-success?session_id={{CHECKOUT_SESSION_ID}}&booking_id={request.id}",
            cancel_url=f"{origin}/booking-canceled?booking_id={request.id}",
            payment_intent_data={
                "application_fee_amount": split.platform_fee_grosze,
                "transfer_data": {"destination": host_account.stripe_account_id},
                "metadata": {
                    "booking_request_id": str(request.id),
                    "host_id": request.host_id,
                    "guest_id": identity.user_id,
                    "platform_fee_grosze": str(split.platform_fee_grosze),
                    "host_amount_grosze": str(split.host_amount_grosze),
                },
            },
            metadata={
                "booking_request_id": str(request.id),
                "host_id": request.host_id,
                "guest_id": identity.user_id,
                "total_amount": str(quote.total),
                "platform_fee": str(split.platform_fee_grosze / 100),
                "host_amount": str(split.host_amount_grosze / 100),
                "nights": str(quote.nights),
                "start_date": request.start_date.isoformat(),
                "end_date": request.end_date.isoformat(),
            },
        )
    except stripe.StripeError as e:
        raise _stripe_error(e)

    logging.info(f"PAYMENT: Checkout session {session.id} created for request {request.id}.")
    return CheckoutResult(
        url=session.url,
        session_id=session.id,
        total_amount=quote.total,
        platform_fee=split.platform_fee_grosze / 100,
        host_amount=split.host_amount_grosze / 100,
    )


async def verify_booking_payment(session_id: str) -> PaymentVerification:
    if not session_id:
        raise ValidationError("Session ID is required")
    _configure_stripe()
    try:
        session = await stripe.checkout.Session.retrieve_async(session_id)
    except stripe.StripeError as e:
        raise _stripe_error(e)

    payment_status = _field(session, "payment_status")
    logging.info(f"PAYMENT: Session {session_id} payment status: {payment_status}.")
    if payment_status != "paid":
        return PaymentVerification(success=False, paid=False, status=payment_status)

    metadata = _field(session, "metadata") or {}
    return PaymentVerification(
        success=True,
        paid=True,
        status=payment_status,
        booking_id=_field(metadata, "booking_request_id"),
        platform_fee=_field(metadata, "platform_fee"),
        host_amount=_field(metadata, "host_amount"),
        total_amount=_field(metadata, "total_amount"),
    )


# --- Manual verification transfer ---

async def mark_verification_transfer_sent(db: AsyncSession, identity: Identity, cabin_id: int,
                                          terms_accepted: bool) -> models.Cabin:
    cabin = await get_cabin_or_404(db, cabin_id)
    ensure_owner(identity, cabin)
    if not terms_accepted:
        raise ValidationError("Musisz zaakceptować regulamin płatności")
    cabin.verification_transfer_sent = True
    await db.commit()
    await db.refresh(cabin)
    logging.info(f"PAYMENT: Host reported a verification transfer for cabin {cabin.id}.")
    return cabin


async def approve_manual_payment(db: AsyncSession, identity: Identity, cabin_id: int) -> models.Cabin:
    ensure_admin(identity)
    cabin = await get_cabin_or_404(db, cabin_id)
    cabin.manual_payment_verified = True
    cabin.online_payments_enabled = True
    await db.commit()
    await db.refresh(cabin)
    logging.info(f"PAYMENT: Manual payment verified for cabin {cabin.id}.")

    host = await db.get(models.Profile, cabin.owner_id)
    if host and host.email:
        await notifications.dispatch(
            notifications.format_payment_verified_to_host(host.email, host.name, cabin.title)
        )
    return cabin


async def set_online_payments(db: AsyncSession, identity: Identity, cabin_id: int, enabled: bool) -> models.Cabin:
    cabin = await get_cabin_or_404(db, cabin_id)
    identity = ensure_owner(identity, cabin)
    if enabled and not cabin.manual_payment_verified:
        account = await get_host_account(db, identity.user_id)
        if not host_can_accept_online(account):
            raise ConfigurationError("Skonfiguruj płatności online przed ich włączeniem")
    cabin.online_payments_enabled = bool(enabled)
    await db.commit()
    await db.refresh(cabin)
    logging.info(f"PAYMENT: Online payments for cabin {cabin.id} set to {cabin.online_payments_enabled}.")
    return cabin
