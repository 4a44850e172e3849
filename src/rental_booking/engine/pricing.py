"""
Rental pricing - inclusive day counting and daily/weekly tier selection.

All functions are pure; the engine feeds them the equipment rates and the
configured tax rate.
"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from ..errors import InvalidInput
from .models import Equipment, PriceBreakdown

CENT = Decimal('0.01')
DAYS_PER_WEEK = 7


def round_currency(amount: Decimal) -> Decimal:
    """Round half-up to 2 decimal places."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def count_rental_days(start_date: date, end_date: date) -> int:
    """Both the start day and the end day are billable."""
    return (end_date - start_date).days + 1


def compute_subtotal(total_days: int, daily_rate: Decimal, weekly_rate: Optional[Decimal]) -> tuple[Decimal, int, int]:
    """
    Greedy tiered pricing: whole weeks first, the remainder at the daily rate.

    Weekly pricing only kicks in from 7 days and only when a weekly rate is
    set. Returns (subtotal, weeks, remaining_days).
    """
    if weekly_rate and total_days >= DAYS_PER_WEEK:
        weeks, remaining_days = divmod(total_days, DAYS_PER_WEEK)
        return weeks * weekly_rate + remaining_days * daily_rate, weeks, remaining_days
    return total_days * daily_rate, 0, total_days


def validate_rates(equipment: Equipment):
    if equipment.daily_rate is None or equipment.daily_rate <= 0:
        raise InvalidInput(
            f"Equipment {equipment.id} has a non-positive daily rate",
            details={"equipment_id": equipment.id, "daily_rate": str(equipment.daily_rate)},
        )
    if equipment.weekly_rate is not None and equipment.weekly_rate <= 0:
        raise InvalidInput(
            f"Equipment {equipment.id} has a non-positive weekly rate",
            details={"equipment_id": equipment.id, "weekly_rate": str(equipment.weekly_rate)},
        )
    if equipment.damage_deposit < 0:
        raise InvalidInput(
            f"Equipment {equipment.id} has a negative damage deposit",
            details={"equipment_id": equipment.id, "damage_deposit": str(equipment.damage_deposit)},
        )


def price_rental(equipment: Equipment, start_date: date, end_date: date, tax_rate: Decimal) -> PriceBreakdown:
    """
    Price a rental of one equipment item over an inclusive date range.

    Tax and total are each rounded half-up to cents as they are derived.
    """
    validate_rates(equipment)

    daily_rate = Decimal(equipment.daily_rate)
    weekly_rate = Decimal(equipment.weekly_rate) if equipment.weekly_rate is not None else None
    deposit = Decimal(equipment.damage_deposit)

    total_days = count_rental_days(start_date, end_date)
    raw_subtotal, weeks, remaining_days = compute_subtotal(total_days, daily_rate, weekly_rate)
    subtotal = round_currency(raw_subtotal)
    tax = round_currency(subtotal * tax_rate)
    total_amount = round_currency(subtotal + tax + deposit)

    breakdown = PriceBreakdown(
        daily_rate=daily_rate,
        weekly_rate=weekly_rate,
        total_days=total_days,
        subtotal=subtotal,
        damage_deposit=deposit,
        tax=tax,
        total_amount=total_amount,
    )

    breakdown.add_trace("Duration", f"{start_date.isoformat()} to {end_date.isoformat()} inclusive", f"{total_days} days")
    if weeks:
        breakdown.add_trace(
            "Rate Tier",
            f"{weeks} × week @ ${weekly_rate:.2f} + {remaining_days} × day @ ${daily_rate:.2f}",
            f"${subtotal:.2f}",
        )
    else:
        breakdown.add_trace("Rate Tier", f"{total_days} × day @ ${daily_rate:.2f}", f"${subtotal:.2f}")
    breakdown.add_trace("Tax", f"{tax_rate * 100:.2f}% of subtotal", f"${tax:.2f}")
    breakdown.add_trace("Deposit", "Damage deposit", f"${deposit:.2f}")
    breakdown.add_trace("Total", "Subtotal + tax + deposit", f"${total_amount:.2f}")

    return breakdown
