# Overview: Pure money arithmetic in integer cents (fees, totals, proration).

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..errors import ValidationError


@dataclass(frozen=True)
class FeeSchedule:
    """Card processing fee: rate * base + fixed_cents, rounded half-up to a cent."""
    rate: Decimal
    fixed_cents: int


DEFAULT_FEE_SCHEDULE = FeeSchedule(rate=Decimal("0.029"), fixed_cents=30)


def fee_schedule_from_config(config) -> FeeSchedule:
    return FeeSchedule(
        rate=Decimal(str(config.get("PROCESSING_FEE_RATE", DEFAULT_FEE_SCHEDULE.rate))),
        fixed_cents=int(config.get("PROCESSING_FEE_FIXED_CENTS", DEFAULT_FEE_SCHEDULE.fixed_cents)),
    )


def round_half_up(value) -> int:
    """Round a Decimal (or int/str) to the nearest whole cent, halves away from zero."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _require_cents(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents", details={field: value})
    if value < 0:
        raise ValidationError(f"{field} must not be negative", details={field: value})
    return value


def processing_fee_cents(base_cents: int, schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE) -> int:
    """
    Processing fee for a base amount.

    Examples at 2.9% + 30c: 10000 -> 320, 50000 -> 1480.
    """
    base_cents = _require_cents(base_cents, "base_cents")
    return round_half_up(Decimal(base_cents) * schedule.rate + schedule.fixed_cents)


def total_with_fee_cents(base_cents: int, schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE) -> int:
    return base_cents + processing_fee_cents(base_cents, schedule)


def prorate_cents(weights: list[int], amount_cents: int) -> list[int]:
    """
    Split amount_cents across weights proportionally, in whole cents.

    Largest-remainder method: every share is floor(weight * amount / total),
    then the leftover cents go to the shares with the largest fractional
    parts (earlier index wins ties). The shares always sum to amount_cents.
    """
    amount_cents = _require_cents(amount_cents, "amount_cents")
    if any(w < 0 for w in weights):
        raise ValidationError("weights must not be negative")
    total_weight = sum(weights)
    if not weights or total_weight == 0:
        return [0 for _ in weights]

    shares = []
    remainders = []
    for idx, weight in enumerate(weights):
        floor, remainder = divmod(weight * amount_cents, total_weight)
        shares.append(floor)
        remainders.append((remainder, idx))

    leftover = amount_cents - sum(shares)
    for _, idx in sorted(remainders, key=lambda r: (-r[0], r[1]))[:leftover]:
        shares[idx] += 1
    return shares


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"
