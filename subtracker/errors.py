from __future__ import annotations


class SubscriptionError(Exception):
    """Base class for errors raised by the subscription service."""


class DataQualityError(SubscriptionError, ValueError):
    """A write was rejected because the record would be malformed."""


class DuplicateSubscriptionError(DataQualityError):
    pass


class SubscriptionNotFoundError(SubscriptionError, KeyError):
    def __init__(self, subscription_id: str) -> None:
        super().__init__(subscription_id)
        self.subscription_id = subscription_id

    def __str__(self) -> str:
        return f"Subscription {self.subscription_id} not found"
