"""Normalization of billing-cycle costs to comparable monthly and yearly figures."""
from __future__ import annotations

from typing import Iterable

from .errors import DataQualityError
from .models import BillingCycle, Subscription

WEEKS_PER_YEAR = 52
MONTHS_PER_YEAR = 12


def monthly_cost(sub: Subscription) -> float:
    """Return the monthly-equivalent cost of ``sub``.

    Weekly plans are annualized over 52 weeks before dividing by twelve.
    """
    cycle = sub.billing_cycle
    if cycle is BillingCycle.MONTHLY:
        return sub.cost
    if cycle is BillingCycle.YEARLY:
        return sub.cost / MONTHS_PER_YEAR
    if cycle is BillingCycle.WEEKLY:
        return sub.cost * WEEKS_PER_YEAR / MONTHS_PER_YEAR
    raise DataQualityError(f"Unknown billing cycle {cycle!r} on subscription {sub.id}")


def yearly_cost(sub: Subscription) -> float:
    return monthly_cost(sub) * MONTHS_PER_YEAR


def total_monthly_cost(subscriptions: Iterable[Subscription]) -> float:
    return sum((monthly_cost(sub) for sub in subscriptions), 0.0)
