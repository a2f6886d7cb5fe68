from __future__ import annotations

from datetime import datetime, timedelta
from itertools import count

import pytest

from subtracker.models import Subscription

# Saturday; the previous Monday-Sunday week is 2024-06-03 .. 2024-06-09.
NOW = datetime(2024, 6, 15, 12, 0)


class FakeClock:
    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int) -> None:
        self.now += timedelta(days=days)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_sub():
    ids = count(1)

    def factory(**overrides) -> Subscription:
        number = next(ids)
        data = {
            "id": f"sub-{number}",
            "name": f"Service {number}",
            "cost": 10.0,
            "billing_cycle": "monthly",
            "next_renewal_date": (NOW + timedelta(days=30)).date(),
            "category": "Other",
            "created_at": NOW - timedelta(days=400),
        }
        data.update(overrides)
        return Subscription(**data)

    return factory
