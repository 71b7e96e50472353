"""Quote arithmetic and the platform/host split."""

import datetime

from app import pricing
from app.models import FeeUnit

START = datetime.date(2025, 7, 1)
END = datetime.date(2025, 7, 4)


def test_count_nights():
    assert pricing.count_nights(START, END) == 3
    assert pricing.count_nights(END, START) == 0


def test_authenticated_quote_is_nights_times_price():
    quote = pricing.quote(400, [], START, END, authenticated=True)
    assert quote.nights == 3
    assert quote.price_per_night == 400
    assert quote.total == 1200


def test_anonymous_quote_marks_up_nightly_price_but_not_fees():
    fees = [{"id": "cleaning", "name": "Sprzątanie", "amount": 150, "unit": "one_time", "enabled": True}]
    quote = pricing.quote(350, fees, START, END, authenticated=False)
    # 350 * 1.07 = 374.5 rounds half up
    assert quote.price_per_night == 375
    assert quote.accommodation_total == 1125
    assert quote.extra_fees_total == 150
    assert quote.total == 1275


def test_fee_lines_skip_disabled_and_multiply_per_day():
    fees = [
        {"name": "Opłata klimatyczna", "amount": 10, "unit": "per_day"},
        {"name": "Sprzątanie", "amount": 150, "unit": "one_time"},
        {"name": "Sauna", "amount": 80, "unit": "one_time", "enabled": False},
    ]
    lines = pricing.fee_lines(fees, nights=3)
    assert [(line.name, line.unit, line.total) for line in lines] == [
        ("Opłata klimatyczna", FeeUnit.PER_DAY, 30),
        ("Sprzątanie", FeeUnit.ONE_TIME, 150),
    ]


def test_split_payment_in_grosze():
    split = pricing.split_payment(1200)
    assert split.total_grosze == 120000
    assert split.platform_fee_grosze == 8400
    assert split.host_amount_grosze == 111600


def test_split_payment_rounds_fee_half_up():
    # 7% of 1050 grosze is 73.5
    split = pricing.split_payment(10.5)
    assert split.platform_fee_grosze == 74
    assert split.host_amount_grosze == 976


def test_round_half_up():
    assert pricing.round_half_up(2.5) == 3
    assert pricing.round_half_up(374.5) == 375
    assert pricing.round_half_up(374.49) == 374
