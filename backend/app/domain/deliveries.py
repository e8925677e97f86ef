"""Delivery schedule rules.

Pure domain functions for editing subscription deliveries.
No DB access, fully deterministic: callers pass ``today``.
"""

import calendar
from datetime import date, timedelta
from enum import StrEnum

from app.core.exceptions import ValidationRejection

CUTOFF_DAYS = 3
FIRST_CYCLE = 1


class DeliveryStatus(StrEnum):
    SCHEDULED = "scheduled"
    DELIVERED = "delivered"
    SKIPPED = "skipped"


class DeliveryAction(StrEnum):
    LIST = "list"
    UPDATE_DATE = "update_date"
    SKIP = "skip"
    ADMIN_UPDATE_STATUS = "admin_update_status"


def days_until(today: date, target: date) -> int:
    """Whole calendar days from ``today`` to ``target`` (negative if in the past)."""
    return (target - today).days


def next_delivery_date(today: date) -> date:
    """Date for a delivery created today: tomorrow."""
    return today + timedelta(days=1)


def next_occurrence_of_day(today: date, day_of_month: int) -> date:
    """Next date strictly after ``today`` that falls on ``day_of_month``.

    Days above 28 are clamped to the month's length.
    """
    year, month = today.year, today.month
    if today.day >= day_of_month:
        month += 1
        if month > 12:
            month = 1
            year += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last_day))


def check_user_editable(cycle_number: int, status: str, delivery_date: date, today: date, cutoff_days: int = CUTOFF_DAYS) -> None:
    """Raise ValidationRejection unless a user may change this delivery.

    Checked in order: first cycle, status, cutoff against the current date.
    """
    if cycle_number <= FIRST_CYCLE:
        raise ValidationRejection("First delivery cannot be modified", code="first_cycle")

    if status != DeliveryStatus.SCHEDULED:
        raise ValidationRejection("Only scheduled deliveries can be changed", code="not_scheduled")

    if days_until(today, delivery_date) <= cutoff_days:
        raise ValidationRejection(
            f"Changes are only allowed more than {cutoff_days} days before delivery",
            code="within_cutoff",
        )


def check_new_date(new_date: date, today: date, cutoff_days: int = CUTOFF_DAYS) -> None:
    if days_until(today, new_date) <= cutoff_days:
        raise ValidationRejection(
            f"New delivery date must be at least {cutoff_days + 1} days from today",
            code="new_date_within_cutoff",
        )


def parse_status(value: str) -> DeliveryStatus:
    try:
        return DeliveryStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in DeliveryStatus)
        raise ValidationRejection(f"Invalid status. Must be one of: {allowed}", code="invalid_status") from None
