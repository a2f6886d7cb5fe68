"""Recommendation strategies.

Two interchangeable strategies turn the active subscriptions into
:data:`~subtracker.models.Insight` records:

``rules``
    A fixed list of checks (low rating, unused, price increase, duplicate
    category) evaluated independently for every subscription.
``score``
    A deterministic weighted sum over usage frequency, rating, cost per use
    and value trend, mapped onto keep / review / cancel.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import settings
from .costs import monthly_cost
from .errors import DataQualityError
from .models import (
    Insight,
    InsightType,
    NotificationType,
    Priority,
    RecommendedAction,
    RuleInsight,
    ScoredInsight,
    SmartNotification,
    Subscription,
    UsageFrequency,
    UsagePattern,
    ValueTrend,
    as_naive_utc,
)

logger = logging.getLogger(__name__)

KEEP_THRESHOLD = 40
REVIEW_THRESHOLD = 10

_FREQUENCY_WEIGHTS: Dict[UsageFrequency, Tuple[int, str]] = {
    UsageFrequency.DAILY: (40, "Used daily - high engagement"),
    UsageFrequency.WEEKLY: (30, "Used weekly - good engagement"),
    UsageFrequency.MONTHLY: (15, "Used monthly - moderate engagement"),
    UsageFrequency.RARELY: (-10, "Rarely used - low engagement"),
    UsageFrequency.NEVER: (-30, "Never used - no engagement"),
}

_MONTHLY_USES: Dict[UsageFrequency, float] = {
    UsageFrequency.DAILY: 30,
    UsageFrequency.WEEKLY: 4,
    UsageFrequency.MONTHLY: 1,
    UsageFrequency.RARELY: 0.1,
}

_PRIORITY_ORDER = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}


def active_only(subscriptions: Iterable[Subscription]) -> List[Subscription]:
    return [sub for sub in subscriptions if sub.is_active]


class Recommender:
    """Strategy interface: produce insights for a subscription collection."""

    name = ""

    def recommend(self, subscriptions: Sequence[Subscription], now: datetime) -> List[Insight]:
        raise NotImplementedError


class RuleRecommender(Recommender):
    name = "rules"

    def recommend(self, subscriptions: Sequence[Subscription], now: datetime) -> List[Insight]:
        now = as_naive_utc(now)
        active = active_only(subscriptions)
        category_counts = Counter(sub.category for sub in active)
        flagged_categories: set[str] = set()
        insights: List[Insight] = []

        for sub in active:
            cost = monthly_cost(sub)
            if sub.value_rating is not None and sub.value_rating <= settings.LOW_VALUE_MAX_RATING:
                insights.append(RuleInsight(
                    id=f"{sub.id}-low",
                    subscription_id=sub.id,
                    subscription=sub,
                    type=InsightType.LOW_VALUE,
                    title="Low Value",
                    reason=f"You rated this {sub.value_rating}/5 stars.",
                    potential_savings=cost,
                ))
            if sub.last_used_date is not None and days_since(sub.last_used_date, now) > settings.UNDERUTILIZED_AFTER_DAYS:
                insights.append(RuleInsight(
                    id=f"{sub.id}-unused",
                    subscription_id=sub.id,
                    subscription=sub,
                    type=InsightType.UNDERUTILIZED,
                    title="Underutilized",
                    reason="Not used in over a month.",
                    potential_savings=cost,
                ))
            if sub.price_history and sub.cost > sub.price_history[0].cost:
                baseline = sub.price_history[0].cost
                insights.append(RuleInsight(
                    id=f"{sub.id}-price",
                    subscription_id=sub.id,
                    subscription=sub,
                    type=InsightType.PRICE_INCREASE,
                    title="Price Increase",
                    reason=f"Price increased from {baseline:.2f} {sub.currency}.",
                ))
            count = category_counts[sub.category]
            if count > 1 and sub.category not in flagged_categories:
                flagged_categories.add(sub.category)
                insights.append(RuleInsight(
                    id=f"{sub.id}-dupe",
                    subscription_id=sub.id,
                    subscription=sub,
                    type=InsightType.DUPLICATE_CATEGORY,
                    title="Duplicate Category",
                    reason=f"You have {count} subscriptions in '{sub.category}'.",
                ))
        return insights


class ScoreRecommender(Recommender):
    name = "score"

    def recommend(self, subscriptions: Sequence[Subscription], now: datetime) -> List[Insight]:
        now = as_naive_utc(now)
        insights: List[Insight] = []
        for sub in active_only(subscriptions):
            pattern = analyze_pattern(sub, now)
            action = pattern.recommendation
            if action is RecommendedAction.KEEP:
                title = f"Keep {sub.name}"
            elif action is RecommendedAction.REVIEW:
                title = f"Review {sub.name}"
            else:
                title = f"Consider Canceling {sub.name}"
            insights.append(ScoredInsight(
                id=f"rec-{sub.id}-{action.value}",
                subscription_id=sub.id,
                subscription=sub,
                title=title,
                reason=pattern.reasons[-1],
                potential_savings=monthly_cost(sub) if action is RecommendedAction.CANCEL else 0.0,
                action=action,
                score=pattern.score,
                confidence=pattern.confidence,
                usage_frequency=pattern.usage_frequency,
                value_trend=pattern.value_trend,
                cost_per_use=pattern.cost_per_use,
                reasons=pattern.reasons,
            ))
        return insights


RECOMMENDERS: Dict[str, Recommender] = {
    RuleRecommender.name: RuleRecommender(),
    ScoreRecommender.name: ScoreRecommender(),
}


def get_recommender(name: Optional[str] = None) -> Recommender:
    key = name or settings.DEFAULT_RECOMMENDER
    try:
        return RECOMMENDERS[key]
    except KeyError:
        choices = ", ".join(sorted(RECOMMENDERS))
        raise DataQualityError(f"Unknown recommendation strategy '{key}' (expected one of: {choices})") from None


# ----------------------------------------------------------------------
# Usage pattern scoring
# ----------------------------------------------------------------------
def days_since(day, now: datetime) -> int:
    return (as_naive_utc(now).date() - day).days


def usage_frequency(sub: Subscription, now: datetime) -> UsageFrequency:
    if sub.last_used_date is None:
        return UsageFrequency.NEVER
    idle = days_since(sub.last_used_date, now)
    if idle <= 1:
        return UsageFrequency.DAILY
    if idle <= 7:
        return UsageFrequency.WEEKLY
    if idle <= 30:
        return UsageFrequency.MONTHLY
    if idle <= 90:
        return UsageFrequency.RARELY
    return UsageFrequency.NEVER


def value_trend(sub: Subscription, now: datetime) -> ValueTrend:
    rating = sub.value_rating
    if rating is None:
        return ValueTrend.STABLE
    if rating >= 4 and (as_naive_utc(now) - sub.created_at).days <= 30:
        return ValueTrend.INCREASING
    if rating <= 2:
        return ValueTrend.DECREASING
    return ValueTrend.STABLE


def cost_per_use(sub: Subscription, now: datetime) -> Optional[float]:
    """Monthly cost divided by estimated monthly uses; None without usage data."""
    if sub.last_used_date is None:
        return None
    idle = days_since(sub.last_used_date, now)
    if idle <= 1:
        uses = _MONTHLY_USES[UsageFrequency.DAILY]
    elif idle <= 7:
        uses = _MONTHLY_USES[UsageFrequency.WEEKLY]
    elif idle <= 30:
        uses = _MONTHLY_USES[UsageFrequency.MONTHLY]
    else:
        uses = _MONTHLY_USES[UsageFrequency.RARELY]
    return monthly_cost(sub) / uses


def analyze_pattern(sub: Subscription, now: datetime) -> UsagePattern:
    frequency = usage_frequency(sub, now)
    trend = value_trend(sub, now)
    per_use = cost_per_use(sub, now)

    weight, reason = _FREQUENCY_WEIGHTS[frequency]
    score = weight
    reasons = [reason]

    rating = sub.value_rating
    if rating is not None:
        score += (rating - 3) * 10
        if rating >= 4:
            reasons.append("High user rating - valuable service")
        elif rating <= 2:
            reasons.append("Low user rating - questionable value")

    # No usage data counts as the most expensive bracket.
    if per_use is not None and per_use < 1:
        score += 20
        reasons.append("Excellent cost per use ratio")
    elif per_use is not None and per_use < 5:
        score += 10
        reasons.append("Good cost per use ratio")
    elif per_use is None or per_use > 20:
        score -= 20
        reasons.append("High cost per use - expensive for usage")

    if trend is ValueTrend.INCREASING:
        score += 15
        reasons.append("Value trend is increasing")
    elif trend is ValueTrend.DECREASING:
        score -= 15
        reasons.append("Value trend is decreasing")

    if score >= KEEP_THRESHOLD:
        action = RecommendedAction.KEEP
        confidence = min(0.9, score / 50)
        reasons.append("Strong indicators suggest keeping this subscription")
    elif score >= REVIEW_THRESHOLD:
        action = RecommendedAction.REVIEW
        confidence = 0.7
        reasons.append("Mixed signals - review usage and value")
    else:
        action = RecommendedAction.CANCEL
        confidence = min(0.9, abs(score) / 30)
        reasons.append("Multiple indicators suggest canceling")

    return UsagePattern(
        subscription_id=sub.id,
        usage_frequency=frequency,
        value_trend=trend,
        cost_per_use=per_use,
        score=score,
        recommendation=action,
        confidence=max(0.0, min(1.0, confidence)),
        reasons=reasons,
    )


def analyze_usage_patterns(subscriptions: Sequence[Subscription], now: datetime) -> List[UsagePattern]:
    now = as_naive_utc(now)
    return [analyze_pattern(sub, now) for sub in active_only(subscriptions)]


def _notification_for(pattern: UsagePattern) -> Optional[SmartNotification]:
    common = {"subscription_id": pattern.subscription_id, "confidence": pattern.confidence}
    if pattern.recommendation is RecommendedAction.KEEP and pattern.confidence > 0.8:
        return SmartNotification(
            type=NotificationType.HIGH_VALUE,
            priority=Priority.LOW,
            message="This subscription provides excellent value based on your usage patterns.",
            action_recommended=RecommendedAction.KEEP,
            **common,
        )
    if pattern.usage_frequency in (UsageFrequency.NEVER, UsageFrequency.RARELY):
        return SmartNotification(
            type=NotificationType.UNUSED,
            priority=Priority.HIGH,
            message="You haven't used this service recently. Consider canceling to save money.",
            action_recommended=RecommendedAction.CANCEL,
            **common,
        )
    if pattern.cost_per_use is not None and pattern.cost_per_use > 20:
        return SmartNotification(
            type=NotificationType.EXPENSIVE,
            priority=Priority.MEDIUM,
            message=f"This subscription costs {pattern.cost_per_use:.2f} per use. Consider if it's worth the cost.",
            action_recommended=RecommendedAction.REVIEW,
            **common,
        )
    if pattern.recommendation is RecommendedAction.CANCEL and pattern.confidence > 0.7:
        return SmartNotification(
            type=NotificationType.LOW_VALUE,
            priority=Priority.HIGH,
            message="Multiple factors suggest this subscription may not be worth keeping.",
            action_recommended=RecommendedAction.CANCEL,
            **common,
        )
    return None


def smart_notifications(subscriptions: Sequence[Subscription], now: datetime) -> List[SmartNotification]:
    """Notifications derived from usage patterns, most urgent first."""
    notifications = [
        notification
        for notification in map(_notification_for, analyze_usage_patterns(subscriptions, now))
        if notification is not None
    ]
    notifications.sort(key=lambda n: (-_PRIORITY_ORDER[n.priority], -n.confidence))
    logger.debug("Generated %d smart notifications", len(notifications))
    return notifications
