from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from subtracker import analytics
from subtracker.models import DerivedAnalytics, InsightType, Subscription
from subtracker.recommendations import ScoreRecommender


def test_empty_collection_returns_zeroed_analytics(now):
    result = analytics.compute_analytics([], now)

    assert result == DerivedAnalytics.empty()
    assert result.total_monthly_cost == 0
    assert result.total_yearly_cost == 0
    assert result.last_month_cost == 0
    assert result.last_week_cost == 0
    assert result.mindful_streak == 0
    assert result.upcoming_renewals == []
    assert result.category_breakdown == {}
    assert result.historical_data == []
    assert result.recommendations == []
    assert result.largest_increase is None
    assert result.biggest_saving is None


def test_totals_use_only_active_subscriptions(make_sub, now):
    subs = [
        make_sub(cost=10, billing_cycle="monthly"),
        make_sub(cost=120, billing_cycle="yearly"),
        make_sub(cost=3, billing_cycle="weekly"),
        make_sub(cost=99, status="paused"),
        make_sub(cost=50, status="cancelled", cancellation_date=now),
    ]

    result = analytics.compute_analytics(subs, now)

    assert result.total_monthly_cost == pytest.approx(33.0)
    assert result.total_yearly_cost == pytest.approx(396.0)


def test_category_breakdown_sums_to_total(make_sub, now):
    subs = [
        make_sub(cost=10, category="Music"),
        make_sub(cost=24, billing_cycle="yearly", category="Music"),
        make_sub(cost=15.99, category="Entertainment"),
        make_sub(cost=40, category="Fitness", status="paused"),
    ]

    result = analytics.compute_analytics(subs, now)

    assert result.category_breakdown == pytest.approx({"Music": 12.0, "Entertainment": 15.99})
    assert "Fitness" not in result.category_breakdown
    assert sum(result.category_breakdown.values()) == pytest.approx(result.total_monthly_cost)


def test_upcoming_renewals_window_and_order(make_sub, now):
    today = now.date()
    late = make_sub(name="late", next_renewal_date=today + timedelta(days=7))
    first_tie = make_sub(name="tie-a", next_renewal_date=today + timedelta(days=2))
    second_tie = make_sub(name="tie-b", next_renewal_date=today + timedelta(days=2))
    due_today = make_sub(name="today", next_renewal_date=today)
    subs = [
        late,
        first_tie,
        make_sub(name="too late", next_renewal_date=today + timedelta(days=8)),
        make_sub(name="overdue", next_renewal_date=today - timedelta(days=1)),
        second_tie,
        make_sub(name="paused", next_renewal_date=today + timedelta(days=1), status="paused"),
        due_today,
    ]

    upcoming = analytics.upcoming_renewals(subs, now)

    assert [s.name for s in upcoming] == ["today", "tie-a", "tie-b", "late"]


def test_last_month_cost_is_anchored_on_creation_date(make_sub, now):
    subs = [
        make_sub(cost=10, created_at=datetime(2024, 5, 20)),
        make_sub(cost=120, billing_cycle="yearly", created_at=datetime(2024, 5, 1)),
        make_sub(cost=7, status="cancelled", cancellation_date=now, created_at=datetime(2024, 5, 31, 23, 59)),
        make_sub(cost=100, created_at=datetime(2024, 6, 1)),
        make_sub(cost=100, created_at=datetime(2024, 4, 30, 23, 59)),
        # renewal date in May must not matter
        make_sub(cost=100, next_renewal_date=date(2024, 5, 10)),
    ]

    assert analytics.last_month_cost(subs, now) == pytest.approx(27.0)


def test_last_week_cost_is_anchored_on_renewal_date(make_sub, now):
    subs = [
        make_sub(cost=10, next_renewal_date=date(2024, 6, 3)),
        make_sub(cost=120, billing_cycle="yearly", next_renewal_date=date(2024, 6, 9)),
        make_sub(cost=100, next_renewal_date=date(2024, 6, 2)),
        make_sub(cost=100, next_renewal_date=date(2024, 6, 10)),
        # creation date in the previous week must not matter
        make_sub(cost=100, created_at=datetime(2024, 6, 5)),
    ]

    assert analytics.last_week_cost(subs, now) == pytest.approx(20.0)


def test_historical_data_is_cumulative(make_sub, now):
    subs = [
        make_sub(cost=10, created_at=datetime(2024, 3, 1)),
        make_sub(cost=5, created_at=datetime(2024, 6, 10)),
        make_sub(cost=99, created_at=datetime(2024, 6, 16)),
    ]

    history = analytics.historical_data(subs, now)

    assert [point.name for point in history] == ["Jan", "Feb", "Mar", "Apr", "May", "Jun"]
    assert [point.cost for point in history] == pytest.approx([0, 0, 10, 10, 10, 15])


def test_largest_increase_picks_the_biggest_positive_change(make_sub, now):
    subs = [
        make_sub(name="small", cost=6, price_history=[{"date": "2024-01-01", "cost": 5}]),
        make_sub(name="big", cost=8, price_history=[{"date": "2024-01-01", "cost": 5}, {"date": "2024-03-01", "cost": 8}]),
        make_sub(name="cancelled", cost=50, status="cancelled", cancellation_date=now,
                 price_history=[{"date": "2024-01-01", "cost": 5}]),
        make_sub(name="no history", cost=100),
    ]

    result = analytics.largest_increase(subs)

    assert result is not None
    assert result.subscription.name == "big"
    assert result.increase == pytest.approx(3)


def test_largest_increase_absent_without_an_increase(make_sub):
    subs = [
        make_sub(cost=5, price_history=[{"date": "2024-01-01", "cost": 5}]),
        make_sub(cost=4, price_history=[{"date": "2024-01-01", "cost": 6}]),
    ]

    assert analytics.largest_increase(subs) is None
    assert analytics.largest_increase([]) is None


def test_biggest_saving_uses_monthly_equivalent(make_sub, now):
    subs = [
        make_sub(name="monthly", cost=15, status="cancelled", cancellation_date=now),
        make_sub(name="yearly", cost=240, billing_cycle="yearly", status="cancelled", cancellation_date=now),
        make_sub(name="paused", cost=500, status="paused"),
        make_sub(name="active", cost=900),
    ]

    assert analytics.biggest_saving(subs).name == "yearly"


def test_biggest_saving_ignores_paused(make_sub):
    assert analytics.biggest_saving([make_sub(status="paused")]) is None


def test_mindful_streak_counts_consecutive_months(make_sub, now):
    subs = [
        make_sub(created_at=datetime(2024, 6, 2)),
        make_sub(created_at=datetime(2024, 5, 31)),
        make_sub(created_at=datetime(2024, 4, 1), status="cancelled", cancellation_date=now),
        make_sub(created_at=datetime(2024, 2, 10)),
    ]

    assert analytics.mindful_streak(subs, now) == 3


def test_mindful_streak_is_zero_without_recent_activity(make_sub, now):
    subs = [make_sub(created_at=datetime(2024, 4, 10))]

    assert analytics.mindful_streak(subs, now) == 0


def test_mindful_streak_cannot_grow_when_recent_month_removed(make_sub, now):
    subs = [
        make_sub(created_at=datetime(2024, 6, 2)),
        make_sub(created_at=datetime(2024, 5, 3)),
    ]
    without_current = [s for s in subs if s.created_at.month != 6]

    assert analytics.mindful_streak(without_current, now) <= analytics.mindful_streak(subs, now)
    assert analytics.mindful_streak(without_current, now) == 0


def test_mindful_streak_caps_at_twelve_months(make_sub, now):
    subs = [make_sub(created_at=datetime(2024, 6, 1) - timedelta(days=30 * i)) for i in range(15)]

    assert analytics.mindful_streak(subs, now) == 12


def test_subscription_of_the_month_and_low_value(make_sub, now):
    subs = [
        make_sub(name="ok", value_rating=3),
        make_sub(name="great", value_rating=5),
        make_sub(name="also great", value_rating=5),
        make_sub(name="meh", value_rating=2),
        make_sub(name="gone", value_rating=1, status="cancelled", cancellation_date=now),
    ]

    result = analytics.compute_analytics(subs, now)

    assert result.subscription_of_the_month.name == "great"
    assert [s.name for s in result.low_value_subscriptions] == ["meh"]


def test_compute_analytics_uses_rules_by_default(make_sub, now):
    subs = [make_sub(cost=15.99, category="Entertainment", value_rating=1)]

    result = analytics.compute_analytics(subs, now)

    assert [i.type for i in result.recommendations] == [InsightType.LOW_VALUE]


def test_compute_analytics_accepts_another_strategy(make_sub, now):
    subs = [make_sub(), make_sub(status="paused")]

    result = analytics.compute_analytics(subs, now, recommender=ScoreRecommender())

    assert len(result.recommendations) == 1
    assert result.recommendations[0].kind == "score"


def test_compute_analytics_is_deterministic(make_sub, now):
    subs = [
        make_sub(cost=10, category="Music", created_at=datetime(2024, 6, 1), value_rating=2),
        make_sub(cost=20, category="Music", last_used_date=date(2024, 1, 1)),
    ]

    assert analytics.compute_analytics(subs, now) == analytics.compute_analytics(list(subs), now)


def test_aware_now_is_normalized(make_sub, now):
    subs = [make_sub(created_at=datetime(2024, 6, 2))]
    aware = now.replace(tzinfo=timezone.utc)

    assert analytics.compute_analytics(subs, aware) == analytics.compute_analytics(subs, now)


@pytest.mark.parametrize(
    "metric",
    [
        analytics.upcoming_renewals,
        analytics.last_month_cost,
        analytics.last_week_cost,
        analytics.historical_data,
        analytics.mindful_streak,
        analytics.this_month_charges,
        analytics.last_month_renewal_charges,
        analytics.top_category,
    ],
)
def test_metrics_accept_aware_now(make_sub, now, metric):
    subs = [
        make_sub(created_at=datetime(2024, 6, 2), next_renewal_date=date(2024, 6, 5)),
        make_sub(created_at=datetime(2024, 5, 3), next_renewal_date=date(2024, 6, 18), category="Music"),
    ]
    # Same instant as ``now``, expressed at UTC+2.
    aware = datetime(2024, 6, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert metric(subs, aware) == metric(subs, now)


def test_renewal_charges_and_trends(make_sub, now):
    subs = [
        make_sub(cost=10, category="Music", next_renewal_date=date(2024, 6, 20)),
        make_sub(cost=120, billing_cycle="yearly", category="Video", next_renewal_date=date(2024, 6, 19)),
        make_sub(cost=30, category="Music", next_renewal_date=date(2024, 5, 20)),
        make_sub(cost=99, category="Fitness", status="paused", next_renewal_date=date(2024, 6, 18)),
        make_sub(cost=12, category="Games", next_renewal_date=date(2024, 7, 2)),
    ]

    result = analytics.compute_analytics(subs, now)

    assert result.this_month_charges == pytest.approx(130.0)
    assert result.last_month_renewal_charges == pytest.approx(30.0)
    assert result.charges_trend == pytest.approx(100 / 30 * 100)
    assert result.top_category == "Video"
    assert [s.category for s in result.upcoming_renewals] == ["Video", "Music"]
    assert result.upcoming_renewals_cost == pytest.approx(130.0)
    assert result.last_month_cost == 0
    assert result.spending_trend == 100


@pytest.mark.parametrize(
    "current, previous, expected",
    [
        (50, 40, 25),
        (30, 40, -25),
        (5, 0, 100),
        (0, 0, 0),
        (0, 20, -100),
    ],
)
def test_spending_trend(current, previous, expected):
    assert analytics.spending_trend(current, previous) == pytest.approx(expected)


def test_top_category_without_renewals_this_month(make_sub, now):
    assert analytics.top_category([make_sub(next_renewal_date=date(2024, 7, 1))], now) is None
    assert DerivedAnalytics.empty().top_category is None


def test_legacy_active_flags_map_to_status(now):
    base = {
        "id": "x",
        "name": "Legacy",
        "cost": 5,
        "next_renewal_date": "2024-07-01T00:00:00Z",
        "created_at": "2024-01-01T10:00:00+02:00",
    }

    assert Subscription(**base, is_active=True).status == "active"
    assert Subscription(**base, is_active=False).status == "paused"
    cancelled = Subscription(**base, is_active=False, cancellation_date="2024-05-01T00:00:00Z")
    assert cancelled.status == "cancelled"
    assert cancelled.is_active is False
    assert cancelled.next_renewal_date == date(2024, 7, 1)
    assert cancelled.created_at == datetime(2024, 1, 1, 8, 0)


def test_motivational_stats(make_sub, now):
    subs = [
        make_sub(cost=10, value_rating=5, created_at=datetime(2024, 6, 1)),
        make_sub(cost=20, value_rating=4),
        make_sub(cost=12, value_rating=1),
        make_sub(cost=30, status="cancelled", cancellation_date=now),
        make_sub(cost=6, status="paused"),
    ]

    stats = analytics.motivational_stats(subs, now)

    assert stats.monthly_savings == pytest.approx(36.0)
    assert stats.potential_savings == pytest.approx(12.0)
    assert stats.high_value_count == 2
    assert stats.optimization_score == 67
    assert stats.mindful_streak == 1
    assert stats.subscription_of_the_month.value_rating == 5
    assert stats.challenge.title == "Cancel a low-value sub"


def test_motivational_stats_asks_for_ratings(make_sub, now):
    stats = analytics.motivational_stats([make_sub(value_rating=4), make_sub()], now)

    assert stats.optimization_score == 100
    assert stats.challenge.title == "Review your subscriptions"
    assert "1 unrated" in stats.challenge.description
