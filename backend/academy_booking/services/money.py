"""
Booking price and commission arithmetic.

Everything here is pure and works on Decimal. Amounts are rounded half-up to
two places after every step that can produce more precision, so the numbers
stored on a booking are exactly the numbers a user was quoted.

Tax (GST) applies to the platform fee only, never to the batch amount.
"""

from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Union

from academy_booking.core.exceptions import ValidationError

TWO_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() first so floats keep their printed value instead of binary noise
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeSettings:
    platform_fee: Decimal
    tax_percentage: Decimal
    tax_enabled: bool
    commission_rate: Decimal  # percentage, 0-100


@dataclass(frozen=True)
class PriceBreakdown:
    admission_fee_per_participant: Decimal
    total_admission_fee: Decimal
    base_fee_per_participant: Decimal
    total_base_fee: Decimal
    batch_amount: Decimal
    platform_fee: Decimal
    subtotal: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    participant_count: int
    currency: str

    def to_dict(self) -> dict[str, Any]:
        return {
            key: (str(value) if isinstance(value, Decimal) else value)
            for key, value in asdict(self).items()
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceBreakdown":
        values = {}
        for field in fields(cls):
            raw = data[field.name]
            if field.name == "participant_count":
                values[field.name] = int(raw)
            elif field.name == "currency":
                values[field.name] = raw
            else:
                values[field.name] = to_decimal(raw)
        return cls(**values)


@dataclass(frozen=True)
class CommissionSnapshot:
    rate: Decimal  # fraction, 0-1
    amount: Decimal
    payout_amount: Decimal
    computed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "rate": str(self.rate),
            "amount": str(self.amount),
            "payout_amount": str(self.payout_amount),
            "computed_at": self.computed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CommissionSnapshot":
        return cls(
            rate=to_decimal(data["rate"]),
            amount=to_decimal(data["amount"]),
            payout_amount=to_decimal(data["payout_amount"]),
            computed_at=datetime.fromisoformat(data["computed_at"]),
        )


def per_participant_fee(base_price: Number, discounted_price: Optional[Number] = None) -> Decimal:
    """Discounted price when set and positive, otherwise the base price."""
    discounted = to_decimal(discounted_price) if discounted_price is not None else None
    if discounted is not None and discounted > ZERO:
        return discounted
    return to_decimal(base_price)


def normalize_commission_rate(rate: Optional[Number]) -> Decimal:
    """Turn a stored commission setting into a 0-1 fraction.

    Settings hold a percentage (10 means 10%). Values below 1 are taken as
    already being a fraction. The result is clamped to [0, 1].
    """
    value = to_decimal(rate)
    if value >= ONE:
        value = value / HUNDRED
    if value < ZERO:
        return ZERO
    if value > ONE:
        return ONE
    return value.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def calculate_price_breakdown(
    admission_fee: Optional[Number],
    fee_per_participant: Number,
    participant_count: int,
    fees: FeeSettings,
    currency: str = "INR",
) -> PriceBreakdown:
    if participant_count <= 0:
        raise ValidationError("At least one participant is required")

    admission = round_money(admission_fee or ZERO)
    fee = round_money(fee_per_participant)
    platform_fee = round_money(fees.platform_fee)
    tax_percentage = round_money(fees.tax_percentage)

    total_admission = round_money(admission * participant_count)
    total_base = round_money(fee * participant_count)
    batch_amount = round_money(total_admission + total_base)
    tax = round_money(platform_fee * tax_percentage / HUNDRED if fees.tax_enabled else ZERO)
    subtotal = round_money(batch_amount + platform_fee)
    total = round_money(batch_amount + platform_fee + tax)

    if total <= ZERO:
        raise ValidationError("Booking amount must be greater than zero")

    return PriceBreakdown(
        admission_fee_per_participant=admission,
        total_admission_fee=total_admission,
        base_fee_per_participant=fee,
        total_base_fee=total_base,
        batch_amount=batch_amount,
        platform_fee=platform_fee,
        subtotal=subtotal,
        tax_percentage=tax_percentage,
        tax_amount=tax,
        total_amount=total,
        participant_count=participant_count,
        currency=currency,
    )


def calculate_commission(
    batch_amount: Number,
    commission_setting: Optional[Number],
    now: Optional[datetime] = None,
) -> CommissionSnapshot:
    base = round_money(batch_amount)
    rate = normalize_commission_rate(commission_setting)
    commission = round_money(base * rate)
    payout = round_money(base - commission)
    payout = max(ZERO.quantize(TWO_PLACES), min(base, payout))
    return CommissionSnapshot(
        rate=rate,
        amount=commission,
        payout_amount=payout,
        computed_at=now or datetime.now(timezone.utc),
    )


def to_minor_units(amount: Number) -> int:
    """Rupees to paise (or any 2-decimal currency to its minor unit)."""
    return int((to_decimal(amount) * HUNDRED).quantize(ONE, rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return round_money(Decimal(amount) / HUNDRED)
