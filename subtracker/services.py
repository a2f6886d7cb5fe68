from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from . import analytics as engine
from .config import settings
from .errors import DataQualityError, DuplicateSubscriptionError, SubscriptionNotFoundError
from .models import (
    BillingCycle,
    DerivedAnalytics,
    Insight,
    MotivationalStats,
    PricePoint,
    SmartNotification,
    Subscription,
    SubscriptionCreate,
    SubscriptionStatus,
    SubscriptionUpdate,
    UsagePattern,
)
from .recommendations import analyze_usage_patterns, get_recommender, smart_notifications

logger = logging.getLogger(__name__)

_RENEWAL_STEP = {
    BillingCycle.WEEKLY: relativedelta(weeks=1),
    BillingCycle.MONTHLY: relativedelta(months=1),
    BillingCycle.YEARLY: relativedelta(years=1),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SubscriptionManager:
    """In-memory store of subscriptions with write-boundary validation."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._subscriptions: Dict[str, Subscription] = {}
        self._sequence: int = 0
        self._clock = clock

    # ------------------------------------------------------------------
    # Public accessors
    # ------------------------------------------------------------------
    @property
    def subscriptions(self) -> Iterable[Subscription]:
        return self._subscriptions.values()

    def get(self, subscription_id: str) -> Subscription:
        try:
            return self._subscriptions[subscription_id]
        except KeyError:
            raise SubscriptionNotFoundError(subscription_id) from None

    def snapshot(self) -> Tuple[Subscription, ...]:
        """Stable copy of the collection for one analytics pass."""
        return tuple(self._subscriptions.values())

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------
    def add_subscription(self, payload: SubscriptionCreate) -> Subscription:
        name = self._sanitize(payload.name)
        if len(name) < settings.MIN_NAME_LENGTH:
            self._reject(f"Subscription name must be at least {settings.MIN_NAME_LENGTH} characters long")
        self._check_cost(payload.cost)
        self._check_rating(payload.value_rating)
        if any(sub.is_active and sub.name.lower() == name.lower() for sub in self.subscriptions):
            logger.warning("Rejected duplicate subscription %r", name)
            raise DuplicateSubscriptionError(f'You already have an active subscription for "{name}"')

        now = self._clock()
        self._sequence += 1
        subscription = Subscription(
            id=str(self._sequence),
            name=name,
            cost=payload.cost,
            currency=payload.currency or settings.DEFAULT_CURRENCY,
            billing_cycle=payload.billing_cycle,
            next_renewal_date=payload.next_renewal_date,
            category=self._sanitize(payload.category) or "Other",
            status=SubscriptionStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            last_used_date=payload.last_used_date,
            value_rating=payload.value_rating,
            notes=payload.notes,
            is_trial=payload.is_trial,
            price_history=[PricePoint(date=now.date(), cost=payload.cost)],
        )
        self._subscriptions[subscription.id] = subscription
        logger.info("Added subscription %s (%s)", subscription.id, subscription.name)
        return subscription

    def update_subscription(self, subscription_id: str, payload: SubscriptionUpdate) -> Subscription:
        subscription = self.get(subscription_id)
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes:
            changes["name"] = self._sanitize(changes["name"])
            if len(changes["name"]) < settings.MIN_NAME_LENGTH:
                self._reject(f"Subscription name must be at least {settings.MIN_NAME_LENGTH} characters long")
        if "category" in changes:
            changes["category"] = self._sanitize(changes["category"]) or "Other"
        if "value_rating" in changes:
            self._check_rating(changes["value_rating"])
        if "cost" in changes:
            self._check_cost(changes["cost"])
            if changes["cost"] != subscription.cost:
                point = PricePoint(date=self._clock().date(), cost=changes["cost"])
                changes["price_history"] = [*subscription.price_history, point]
        return self._store(subscription, changes)

    def rate_subscription(
        self,
        subscription_id: str,
        rating: int,
        last_used_date: Optional[date] = None,
        notes: Optional[str] = None,
        cancellation_reason: Optional[str] = None,
    ) -> Subscription:
        subscription = self.get(subscription_id)
        self._check_rating(rating)
        changes = {
            "value_rating": rating,
            "last_used_date": last_used_date or self._clock().date(),
        }
        if notes is not None:
            changes["notes"] = notes
        if cancellation_reason is not None:
            changes["cancellation_reason"] = cancellation_reason
        return self._store(subscription, changes)

    def track_usage(self, subscription_id: str) -> Subscription:
        subscription = self.get(subscription_id)
        return self._store(subscription, {"last_used_date": self._clock().date()})

    def renew_subscription(self, subscription_id: str) -> Subscription:
        subscription = self.get(subscription_id)
        next_renewal = subscription.next_renewal_date + _RENEWAL_STEP[subscription.billing_cycle]
        return self._store(subscription, {"next_renewal_date": next_renewal})

    def roll_over_renewals(self) -> List[str]:
        """Advance every lapsed active renewal date to today or later."""
        today = self._clock().date()
        touched = []
        for subscription in list(self.subscriptions):
            if not subscription.is_active or subscription.next_renewal_date >= today:
                continue
            anchor = subscription.next_renewal_date
            step = _RENEWAL_STEP[subscription.billing_cycle]
            periods = 1
            # Offset from the anchor: Jan 31 + 3 months is Apr 30.
            while anchor + step * periods < today:
                periods += 1
            next_renewal = anchor + step * periods
            self._store(subscription, {"next_renewal_date": next_renewal})
            touched.append(subscription.id)
        if touched:
            logger.info("Rolled over %d renewal dates", len(touched))
        return touched

    def pause_subscription(self, subscription_id: str) -> Subscription:
        subscription = self.get(subscription_id)
        if subscription.status is not SubscriptionStatus.ACTIVE:
            self._reject(f"Only active subscriptions can be paused (status is {subscription.status.value})")
        return self._store(subscription, {
            "status": SubscriptionStatus.PAUSED,
            "paused_at": self._clock(),
        })

    def resume_subscription(self, subscription_id: str) -> Subscription:
        subscription = self.get(subscription_id)
        if subscription.status is not SubscriptionStatus.PAUSED:
            self._reject(f"Only paused subscriptions can be resumed (status is {subscription.status.value})")
        return self._store(subscription, {
            "status": SubscriptionStatus.ACTIVE,
            "paused_at": None,
        })

    def cancel_subscription(self, subscription_id: str, reason: Optional[str] = None) -> Subscription:
        subscription = self.get(subscription_id)
        if subscription.status is SubscriptionStatus.CANCELLED:
            self._reject("Subscription is already cancelled")
        changes = {
            "status": SubscriptionStatus.CANCELLED,
            "cancellation_date": self._clock(),
        }
        if reason:
            changes["cancellation_reason"] = reason
        return self._store(subscription, changes)

    def bulk_update(self, subscription_ids: List[str], payload: SubscriptionUpdate) -> List[Subscription]:
        if not subscription_ids:
            self._reject("No subscriptions selected for update")
        for subscription_id in subscription_ids:
            self.get(subscription_id)
        return [self.update_subscription(subscription_id, payload) for subscription_id in subscription_ids]

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    def analytics(self, now: Optional[datetime] = None, strategy: Optional[str] = None) -> DerivedAnalytics:
        recommender = get_recommender(strategy)
        return engine.compute_analytics(self.snapshot(), now or self._clock(), recommender)

    def recommendations(self, now: Optional[datetime] = None, strategy: Optional[str] = None) -> List[Insight]:
        return get_recommender(strategy).recommend(self.snapshot(), engine.resolve_now(now or self._clock()))

    def usage_patterns(self, now: Optional[datetime] = None) -> List[UsagePattern]:
        return analyze_usage_patterns(self.snapshot(), now or self._clock())

    def notifications(self, now: Optional[datetime] = None) -> List[SmartNotification]:
        return smart_notifications(self.snapshot(), now or self._clock())

    def stats(self, now: Optional[datetime] = None) -> MotivationalStats:
        return engine.motivational_stats(self.snapshot(), now or self._clock())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _store(self, subscription: Subscription, changes: dict) -> Subscription:
        changes["updated_at"] = self._clock()
        updated = subscription.model_copy(update=changes)
        self._subscriptions[updated.id] = updated
        logger.info("Updated subscription %s: %s", updated.id, ", ".join(sorted(changes)))
        return updated

    @staticmethod
    def _reject(message: str) -> None:
        logger.warning("Rejected write: %s", message)
        raise DataQualityError(message)

    @classmethod
    def _check_cost(cls, cost: float) -> None:
        if cost <= 0:
            cls._reject("Cost must be greater than 0")

    @classmethod
    def _check_rating(cls, rating: Optional[int]) -> None:
        if rating is not None and not 1 <= rating <= 5:
            cls._reject("Rating must be between 1 and 5")

    @staticmethod
    def _sanitize(text: str) -> str:
        return text.strip().replace("<", "").replace(">", "")


manager = SubscriptionManager()
