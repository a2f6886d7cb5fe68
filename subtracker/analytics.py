"""Aggregate spending analytics over a subscription collection.

Every function here is pure: it reads the records it is given and the
reference time ``now`` it is passed, and returns fresh values. Only
:func:`compute_analytics` falls back to the wall clock when ``now`` is
omitted.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from .config import settings
from .costs import monthly_cost, total_monthly_cost
from .models import (
    Challenge,
    DerivedAnalytics,
    HistoryPoint,
    MotivationalStats,
    PriceIncrease,
    Subscription,
    SubscriptionStatus,
    as_naive_utc,
)
from .recommendations import Recommender, active_only, get_recommender

logger = logging.getLogger(__name__)


def resolve_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc).replace(tzinfo=None)
    return as_naive_utc(now)


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _in_month(moment: datetime, month_start: datetime) -> bool:
    return month_start <= moment < month_start + relativedelta(months=1)


# ----------------------------------------------------------------------
# Individual metrics
# ----------------------------------------------------------------------
def upcoming_renewals(
    subscriptions: Sequence[Subscription],
    now: datetime,
    window_days: Optional[int] = None,
) -> List[Subscription]:
    """Active subscriptions renewing within ``window_days`` calendar days, soonest first."""
    window = settings.UPCOMING_RENEWAL_DAYS if window_days is None else window_days
    today = as_naive_utc(now).date()
    due = [
        sub for sub in active_only(subscriptions)
        if 0 <= (sub.next_renewal_date - today).days <= window
    ]
    return sorted(due, key=lambda sub: sub.next_renewal_date)


def last_month_cost(subscriptions: Sequence[Subscription], now: datetime) -> float:
    """Monthly-equivalent cost of subscriptions *created* in the previous calendar month.

    Anchored on ``created_at``, unlike :func:`last_week_cost`.
    """
    previous = _month_start(as_naive_utc(now)) - relativedelta(months=1)
    return total_monthly_cost(sub for sub in subscriptions if _in_month(sub.created_at, previous))


def last_week_cost(subscriptions: Sequence[Subscription], now: datetime) -> float:
    """Monthly-equivalent cost of subscriptions *renewing* in the previous Monday-Sunday week.

    Anchored on ``next_renewal_date``, unlike :func:`last_month_cost`.
    """
    today = as_naive_utc(now).date()
    week_start = today - timedelta(days=today.weekday() + 7)
    week_end = week_start + timedelta(days=6)
    return total_monthly_cost(
        sub for sub in subscriptions if week_start <= sub.next_renewal_date <= week_end
    )


def category_breakdown(subscriptions: Sequence[Subscription]) -> Dict[str, float]:
    breakdown: Dict[str, float] = {}
    for sub in active_only(subscriptions):
        breakdown[sub.category] = breakdown.get(sub.category, 0.0) + monthly_cost(sub)
    return breakdown


def historical_data(
    subscriptions: Sequence[Subscription],
    now: datetime,
    months: Optional[int] = None,
) -> List[HistoryPoint]:
    """Cumulative monthly spend as of the same moment in each trailing month, oldest first."""
    span = settings.HISTORY_MONTHS if months is None else months
    now = as_naive_utc(now)
    points = []
    for offset in range(span - 1, -1, -1):
        reference = now - relativedelta(months=offset)
        cost = total_monthly_cost(sub for sub in subscriptions if sub.created_at <= reference)
        points.append(HistoryPoint(name=reference.strftime("%b"), cost=cost))
    return points


def largest_increase(subscriptions: Sequence[Subscription]) -> Optional[PriceIncrease]:
    best: Optional[PriceIncrease] = None
    for sub in active_only(subscriptions):
        if not sub.price_history:
            continue
        increase = sub.cost - sub.price_history[0].cost
        if best is None or increase > best.increase:
            best = PriceIncrease(subscription=sub, increase=increase)
    if best is None or best.increase <= 0:
        return None
    return best


def biggest_saving(subscriptions: Sequence[Subscription]) -> Optional[Subscription]:
    cancelled = [
        sub for sub in subscriptions
        if sub.status is SubscriptionStatus.CANCELLED and sub.cancellation_date is not None
    ]
    if not cancelled:
        return None
    return max(cancelled, key=monthly_cost)


def mindful_streak(
    subscriptions: Sequence[Subscription],
    now: datetime,
    max_months: Optional[int] = None,
) -> int:
    """Consecutive months, counting back from the current one, with a new subscription."""
    limit = settings.STREAK_MAX_MONTHS if max_months is None else max_months
    current = _month_start(as_naive_utc(now))
    streak = 0
    for offset in range(limit):
        month = current - relativedelta(months=offset)
        if not any(_in_month(sub.created_at, month) for sub in subscriptions):
            break
        streak += 1
    return streak


def subscription_of_the_month(subscriptions: Sequence[Subscription]) -> Optional[Subscription]:
    rated = [sub for sub in active_only(subscriptions) if sub.value_rating is not None]
    if not rated:
        return None
    return max(rated, key=lambda sub: sub.value_rating)


def low_value_subscriptions(subscriptions: Sequence[Subscription]) -> List[Subscription]:
    return [
        sub for sub in active_only(subscriptions)
        if sub.value_rating is not None and sub.value_rating <= settings.LOW_VALUE_MAX_RATING
    ]


def potential_savings(subscriptions: Sequence[Subscription]) -> float:
    """Monthly-equivalent cost of the active low-rated subscriptions."""
    return total_monthly_cost(low_value_subscriptions(subscriptions))


def upcoming_renewals_cost(upcoming: Sequence[Subscription]) -> float:
    # Actual charges, not monthly equivalents.
    return sum((sub.cost for sub in upcoming), 0.0)


def spending_trend(current: float, previous: float) -> float:
    """Percentage change from ``previous`` to ``current``.

    With no previous spend the trend is 100 if anything is spent now and 0
    otherwise.
    """
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0 if current > 0 else 0.0


def renewals_in_month(subscriptions: Sequence[Subscription], month_start: datetime) -> List[Subscription]:
    return [
        sub for sub in active_only(subscriptions)
        if (sub.next_renewal_date.year, sub.next_renewal_date.month) == (month_start.year, month_start.month)
    ]


def this_month_charges(subscriptions: Sequence[Subscription], now: datetime) -> float:
    """Sum of the charges of active subscriptions renewing in the current calendar month."""
    current = _month_start(as_naive_utc(now))
    return sum((sub.cost for sub in renewals_in_month(subscriptions, current)), 0.0)


def last_month_renewal_charges(subscriptions: Sequence[Subscription], now: datetime) -> float:
    """Like :func:`this_month_charges` for the previous month.

    This is the renewal-date reading of "last month", kept next to the
    creation-date :func:`last_month_cost` until the two are reconciled.
    """
    previous = _month_start(as_naive_utc(now)) - relativedelta(months=1)
    return sum((sub.cost for sub in renewals_in_month(subscriptions, previous)), 0.0)


def top_category(subscriptions: Sequence[Subscription], now: datetime) -> Optional[str]:
    """Category with the highest charges among this month's renewals."""
    charges: Dict[str, float] = {}
    for sub in renewals_in_month(subscriptions, _month_start(as_naive_utc(now))):
        charges[sub.category] = charges.get(sub.category, 0.0) + sub.cost
    if not charges:
        return None
    return max(charges, key=charges.get)


# ----------------------------------------------------------------------
# Aggregates
# ----------------------------------------------------------------------
def compute_analytics(
    subscriptions: Sequence[Subscription],
    now: Optional[datetime] = None,
    recommender: Optional[Recommender] = None,
) -> DerivedAnalytics:
    """Recompute every dashboard figure from ``subscriptions`` as of ``now``."""
    if not subscriptions:
        return DerivedAnalytics.empty()

    now = resolve_now(now)
    strategy = recommender or get_recommender()
    active = active_only(subscriptions)
    monthly_total = total_monthly_cost(active)
    previous_month = last_month_cost(subscriptions, now)
    upcoming = upcoming_renewals(subscriptions, now)
    charges = this_month_charges(subscriptions, now)
    previous_charges = last_month_renewal_charges(subscriptions, now)

    analytics = DerivedAnalytics(
        total_monthly_cost=monthly_total,
        last_month_cost=previous_month,
        last_week_cost=last_week_cost(subscriptions, now),
        total_yearly_cost=monthly_total * 12,
        spending_trend=spending_trend(monthly_total, previous_month),
        upcoming_renewals=upcoming,
        upcoming_renewals_cost=upcoming_renewals_cost(upcoming),
        this_month_charges=charges,
        last_month_renewal_charges=previous_charges,
        charges_trend=spending_trend(charges, previous_charges),
        top_category=top_category(subscriptions, now),
        category_breakdown=category_breakdown(subscriptions),
        historical_data=historical_data(subscriptions, now),
        largest_increase=largest_increase(subscriptions),
        biggest_saving=biggest_saving(subscriptions),
        mindful_streak=mindful_streak(subscriptions, now),
        subscription_of_the_month=subscription_of_the_month(subscriptions),
        low_value_subscriptions=low_value_subscriptions(subscriptions),
        recommendations=strategy.recommend(subscriptions, now),
    )
    logger.debug(
        "Analytics for %d subscriptions (%d active) using %s: %d recommendations",
        len(subscriptions), len(active), strategy.name, len(analytics.recommendations),
    )
    return analytics


def motivational_stats(
    subscriptions: Sequence[Subscription],
    now: Optional[datetime] = None,
) -> MotivationalStats:
    now = resolve_now(now)
    savings = total_monthly_cost(sub for sub in subscriptions if not sub.is_active)
    rated = [sub for sub in subscriptions if sub.value_rating is not None]
    high_value = [sub for sub in rated if sub.value_rating >= 4]
    low_value = [sub for sub in rated if sub.value_rating <= settings.LOW_VALUE_MAX_RATING]

    challenge = None
    if low_value:
        challenge = Challenge(
            title="Cancel a low-value sub",
            description=(
                f"You have {len(low_value)} subs rated {settings.LOW_VALUE_MAX_RATING} stars or less. "
                "Cancel one to save money!"
            ),
        )
    elif len(rated) < len(subscriptions):
        challenge = Challenge(
            title="Review your subscriptions",
            description=(
                f"You have {len(subscriptions) - len(rated)} unrated subs. "
                "Rate them to improve your score!"
            ),
        )

    return MotivationalStats(
        monthly_savings=savings,
        potential_savings=potential_savings(subscriptions),
        high_value_count=len(high_value),
        optimization_score=round(len(high_value) / max(len(rated), 1) * 100),
        mindful_streak=mindful_streak(subscriptions, now),
        subscription_of_the_month=subscription_of_the_month(subscriptions),
        challenge=challenge,
    )
