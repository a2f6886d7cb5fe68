from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator


class BillingCycle(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class InsightType(str, Enum):
    LOW_VALUE = "low_value"
    UNDERUTILIZED = "underutilized"
    PRICE_INCREASE = "price_increase"
    DUPLICATE_CATEGORY = "duplicate_category"


class RecommendedAction(str, Enum):
    KEEP = "keep"
    REVIEW = "review"
    CANCEL = "cancel"


class UsageFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    RARELY = "rarely"
    NEVER = "never"


class ValueTrend(str, Enum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class NotificationType(str, Enum):
    HIGH_VALUE = "high_value"
    LOW_VALUE = "low_value"
    UNUSED = "unused"
    EXPENSIVE = "expensive"


def _calendar_date(value: Any) -> Any:
    """Drop the time-of-day part of datetime values given for date fields."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class PricePoint(BaseModel):
    date: date
    cost: float = Field(..., gt=0)

    @field_validator("date", mode="before")
    @classmethod
    def _strip_time(cls, value: Any) -> Any:
        return _calendar_date(value)


class Subscription(BaseModel):
    id: str
    name: str = Field(..., min_length=1)
    cost: float = Field(..., gt=0, description="Amount charged per billing cycle")
    currency: str = "USD"
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    next_renewal_date: date
    category: str = "Other"
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    created_at: datetime
    updated_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    cancellation_date: Optional[datetime] = None
    last_used_date: Optional[date] = None
    value_rating: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    is_trial: bool = False
    price_history: List[PricePoint] = Field(default_factory=list, description="Oldest first")

    @model_validator(mode="before")
    @classmethod
    def _map_active_flag(cls, data: Any) -> Any:
        # Records in the older is_active/cancellation_date shape carry no status.
        if isinstance(data, dict) and "status" not in data and "is_active" in data:
            data = dict(data)
            if data.pop("is_active"):
                data["status"] = SubscriptionStatus.ACTIVE
            elif data.get("cancellation_date"):
                data["status"] = SubscriptionStatus.CANCELLED
            else:
                data["status"] = SubscriptionStatus.PAUSED
        return data

    @field_validator("next_renewal_date", "last_used_date", mode="before")
    @classmethod
    def _strip_time(cls, value: Any) -> Any:
        return _calendar_date(value)

    @field_validator("created_at", "updated_at", "paused_at", "cancellation_date")
    @classmethod
    def _to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value)

    @computed_field  # type: ignore[misc]
    @property
    def is_active(self) -> bool:
        return self.status is SubscriptionStatus.ACTIVE


class SubscriptionCreate(BaseModel):
    name: str
    cost: float = Field(..., description="Amount charged per billing cycle")
    currency: Optional[str] = None
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    next_renewal_date: date
    category: str = "Other"
    last_used_date: Optional[date] = None
    value_rating: Optional[int] = None
    notes: Optional[str] = None
    is_trial: bool = False


class SubscriptionUpdate(BaseModel):
    name: Optional[str] = None
    cost: Optional[float] = None
    currency: Optional[str] = None
    billing_cycle: Optional[BillingCycle] = None
    next_renewal_date: Optional[date] = None
    category: Optional[str] = None
    last_used_date: Optional[date] = None
    value_rating: Optional[int] = None
    notes: Optional[str] = None


class RatingIn(BaseModel):
    rating: int
    last_used_date: Optional[date] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None


class CancelIn(BaseModel):
    reason: Optional[str] = None


class BulkUpdateIn(BaseModel):
    ids: List[str]
    changes: SubscriptionUpdate


class InsightBase(BaseModel):
    id: str
    subscription_id: str
    subscription: Subscription
    title: str
    reason: str
    potential_savings: float = 0.0


class RuleInsight(InsightBase):
    kind: Literal["rule"] = "rule"
    type: InsightType


class ScoredInsight(InsightBase):
    kind: Literal["score"] = "score"
    action: RecommendedAction
    score: int
    confidence: float = Field(..., ge=0, le=1)
    usage_frequency: UsageFrequency
    value_trend: ValueTrend
    cost_per_use: Optional[float] = Field(None, description="None when there is no usage data")
    reasons: List[str] = Field(default_factory=list)


Insight = Annotated[Union[RuleInsight, ScoredInsight], Field(discriminator="kind")]


class PriceIncrease(BaseModel):
    subscription: Subscription
    increase: float


class HistoryPoint(BaseModel):
    name: str
    cost: float


class DerivedAnalytics(BaseModel):
    total_monthly_cost: float
    last_month_cost: float
    last_week_cost: float
    total_yearly_cost: float
    spending_trend: float = Field(0.0, description="Percent change of total_monthly_cost vs last_month_cost")
    upcoming_renewals: List[Subscription]
    upcoming_renewals_cost: float = 0.0
    this_month_charges: float = 0.0
    last_month_renewal_charges: float = 0.0
    charges_trend: float = Field(0.0, description="Percent change of this_month_charges vs last month")
    top_category: Optional[str] = None
    category_breakdown: Dict[str, float]
    historical_data: List[HistoryPoint]
    largest_increase: Optional[PriceIncrease] = None
    biggest_saving: Optional[Subscription] = None
    mindful_streak: int = 0
    subscription_of_the_month: Optional[Subscription] = None
    low_value_subscriptions: List[Subscription] = Field(default_factory=list)
    recommendations: List[Insight] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "DerivedAnalytics":
        return cls(
            total_monthly_cost=0.0,
            last_month_cost=0.0,
            last_week_cost=0.0,
            total_yearly_cost=0.0,
            upcoming_renewals=[],
            category_breakdown={},
            historical_data=[],
        )


class UsagePattern(BaseModel):
    subscription_id: str
    usage_frequency: UsageFrequency
    value_trend: ValueTrend
    cost_per_use: Optional[float] = None
    score: int
    recommendation: RecommendedAction
    confidence: float
    reasons: List[str] = Field(default_factory=list)


class SmartNotification(BaseModel):
    subscription_id: str
    type: NotificationType
    priority: Priority
    message: str
    action_recommended: RecommendedAction
    confidence: float


class Challenge(BaseModel):
    title: str
    description: str


class MotivationalStats(BaseModel):
    monthly_savings: float
    potential_savings: float = 0.0
    high_value_count: int
    optimization_score: int
    mindful_streak: int
    subscription_of_the_month: Optional[Subscription] = None
    challenge: Optional[Challenge] = None
