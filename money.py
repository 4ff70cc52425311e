from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, str, Decimal]

BPS_PER_UNIT = 10_000


def to_cents(value: Number) -> int:
    if isinstance(value, Decimal):
        amount = value
    else:
        clean = str(value).strip().replace("$", "").replace(" ", "")
        clean = clean.replace(",", "")
        try:
            amount = Decimal(clean)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_to_bps(value: Number) -> int:
    """50 -> 5000, 12.5 -> 1250."""
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError("Invalid percentage") from exc
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(cents: int, bps: int) -> int:
    share = Decimal(cents) * Decimal(bps) / Decimal(BPS_PER_UNIT)
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_units(cents: int) -> float:
    return round(cents / 100, 2)


def bps_to_percent(bps: int) -> float:
    return round(bps / 100, 2)
