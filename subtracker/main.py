from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import services
from .config import settings
from .errors import DataQualityError, DuplicateSubscriptionError, SubscriptionNotFoundError
from .logging_config import setup_logging
from .models import (
    BulkUpdateIn,
    CancelIn,
    DerivedAnalytics,
    Insight,
    MotivationalStats,
    RatingIn,
    SmartNotification,
    Subscription,
    SubscriptionCreate,
    SubscriptionUpdate,
    UsagePattern,
)

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)


def get_manager() -> services.SubscriptionManager:
    return services.manager


@app.exception_handler(SubscriptionNotFoundError)
async def not_found_handler(request: Request, exc: SubscriptionNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(DuplicateSubscriptionError)
async def duplicate_handler(request: Request, exc: DuplicateSubscriptionError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(DataQualityError)
async def data_quality_handler(request: Request, exc: DataQualityError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.post("/subscriptions", response_model=Subscription, status_code=201)
def add_subscription(payload: SubscriptionCreate) -> Subscription:
    return get_manager().add_subscription(payload)


@app.get("/subscriptions", response_model=list[Subscription])
def list_subscriptions() -> list[Subscription]:
    return list(get_manager().subscriptions)


@app.post("/subscriptions/bulk", response_model=list[Subscription])
def bulk_update(payload: BulkUpdateIn) -> list[Subscription]:
    return get_manager().bulk_update(payload.ids, payload.changes)


@app.get("/subscriptions/{subscription_id}", response_model=Subscription)
def get_subscription(subscription_id: str) -> Subscription:
    return get_manager().get(subscription_id)


@app.patch("/subscriptions/{subscription_id}", response_model=Subscription)
def update_subscription(subscription_id: str, payload: SubscriptionUpdate) -> Subscription:
    return get_manager().update_subscription(subscription_id, payload)


@app.post("/subscriptions/{subscription_id}/rating", response_model=Subscription)
def rate_subscription(subscription_id: str, payload: RatingIn) -> Subscription:
    return get_manager().rate_subscription(
        subscription_id,
        payload.rating,
        last_used_date=payload.last_used_date,
        notes=payload.notes,
        cancellation_reason=payload.cancellation_reason,
    )


@app.post("/subscriptions/{subscription_id}/usage", response_model=Subscription)
def track_usage(subscription_id: str) -> Subscription:
    return get_manager().track_usage(subscription_id)


@app.post("/subscriptions/{subscription_id}/renew", response_model=Subscription)
def renew_subscription(subscription_id: str) -> Subscription:
    return get_manager().renew_subscription(subscription_id)


@app.post("/subscriptions/{subscription_id}/pause", response_model=Subscription)
def pause_subscription(subscription_id: str) -> Subscription:
    return get_manager().pause_subscription(subscription_id)


@app.post("/subscriptions/{subscription_id}/resume", response_model=Subscription)
def resume_subscription(subscription_id: str) -> Subscription:
    return get_manager().resume_subscription(subscription_id)


@app.post("/subscriptions/{subscription_id}/cancel", response_model=Subscription)
def cancel_subscription(subscription_id: str, payload: Optional[CancelIn] = None) -> Subscription:
    reason = payload.reason if payload else None
    return get_manager().cancel_subscription(subscription_id, reason=reason)


@app.post("/renewals/rollover")
def roll_over_renewals() -> dict:
    return {"updated": get_manager().roll_over_renewals()}


@app.get("/analytics", response_model=DerivedAnalytics)
def analytics(now: Optional[datetime] = None, strategy: Optional[str] = None) -> DerivedAnalytics:
    return get_manager().analytics(now=now, strategy=strategy)


@app.get("/recommendations", response_model=List[Insight])
def recommendations(now: Optional[datetime] = None, strategy: Optional[str] = None) -> List[Insight]:
    return get_manager().recommendations(now=now, strategy=strategy)


@app.get("/usage-patterns", response_model=list[UsagePattern])
def usage_patterns(now: Optional[datetime] = None) -> list[UsagePattern]:
    return get_manager().usage_patterns(now=now)


@app.get("/notifications", response_model=list[SmartNotification])
def notifications(now: Optional[datetime] = None) -> list[SmartNotification]:
    return get_manager().notifications(now=now)


@app.get("/stats", response_model=MotivationalStats)
def stats(now: Optional[datetime] = None) -> MotivationalStats:
    return get_manager().stats(now=now)


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok", "app": settings.APP_NAME}
