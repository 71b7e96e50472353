# FILE: app/pricing.py
# ==============================================================================
# Quote-time price arithmetic and the platform/host payment split. Nothing here
# is persisted: totals are recomputed from the listing's current price.
# ==============================================================================
import datetime
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from . import config
from .models import FeeUnit


@dataclass(frozen=True)
class FeeLine:
    name: str
    unit: FeeUnit
    amount: int
    total: int


@dataclass(frozen=True)
class Quote:
    nights: int
    price_per_night: int
    accommodation_total: int
    fees: List[FeeLine]
    extra_fees_total: int
    total: int


@dataclass(frozen=True)
class PaymentSplit:
    total_grosze: int
    platform_fee_grosze: int
    host_amount_grosze: int


def round_half_up(value) -> int:
    """Rounds .5 away from zero, unlike the builtin round()."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def count_nights(start_date: datetime.date, end_date: datetime.date) -> int:
    return max((end_date - start_date).days, 0)


def nightly_price(price_per_night: int, authenticated: bool) -> int:
    """Anonymous guests see a marked-up per-night price."""
    if authenticated:
        return price_per_night
    return round_half_up(price_per_night * config.GUEST_PRICE_MARKUP)


def fee_lines(extra_fees: Optional[Iterable[dict]], nights: int) -> List[FeeLine]:
    lines = []
    for fee in extra_fees or []:
        if not fee.get("enabled", True):
            continue
        unit = FeeUnit(fee.get("unit", FeeUnit.ONE_TIME.value))
        amount = int(fee.get("amount") or 0)
        total = amount * nights if unit == FeeUnit.PER_DAY else amount
        lines.append(FeeLine(name=fee.get("name", ""), unit=unit, amount=amount, total=total))
    return lines


def quote(price_per_night: int, extra_fees, start_date: datetime.date, end_date: datetime.date,
          authenticated: bool = True) -> Quote:
    nights = count_nights(start_date, end_date)
    per_night = nightly_price(price_per_night, authenticated)
    accommodation = nights * per_night
    lines = fee_lines(extra_fees, nights)
    fees_total = sum(line.total for line in lines)
    return Quote(
        nights=nights,
        price_per_night=per_night,
        accommodation_total=accommodation,
        fees=lines,
        extra_fees_total=fees_total,
        total=accommodation + fees_total,
    )


def quote_for_cabin(cabin, start_date: datetime.date, end_date: datetime.date,
                    authenticated: bool = True) -> Quote:
    return quote(cabin.price_per_night, cabin.extra_fees, start_date, end_date, authenticated)


def split_payment(total_pln: int, fee_percent: int = config.PLATFORM_FEE_PERCENT) -> PaymentSplit:
    """Splits a PLN total into platform fee and host share, in grosze."""
    total_grosze = round_half_up(total_pln * 100)
    platform_fee = round_half_up(total_grosze * fee_percent / 100)
    return PaymentSplit(
        total_grosze=total_grosze,
        platform_fee_grosze=platform_fee,
        host_amount_grosze=total_grosze - platform_fee,
    )
