"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from bookings import models
from bookings.services.notifications import NotificationSink
from bookings.stores import DjangoLedgerStore


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self.sent: list[tuple[int, str, dict]] = []

    def notify(self, recipient, template, context) -> None:
        self.sent.append((recipient, template, context))


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


TEST_CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "bookings-tests",
    }
}


@pytest.fixture(autouse=True)
def clear_cache(settings):
    settings.CACHES = TEST_CACHES
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def bookings_settings(settings):
    settings.BOOKINGS = {
        **settings.BOOKINGS,
        "NOTIFICATION_SINK": "bookings.services.notifications.LoggingNotificationSink",
    }


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(timezone.now())


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def store() -> DjangoLedgerStore:
    return DjangoLedgerStore()


@pytest.fixture
def make_class():
    def _make(capacity: int = 10, name: str = "Vinyasa Flow") -> models.StudioClass:
        return models.StudioClass.objects.create(
            name=name, capacity=capacity, day="Monday", time="08:00 AM"
        )

    return _make


@pytest.fixture
def make_membership(clock):
    def _make(
        user_id: int,
        credits: int = 5,
        ends_in: timedelta = timedelta(days=30),
        status: str = models.Membership.Status.ACTIVE,
        package: str = "",
    ) -> models.Membership:
        kind = (
            models.Membership.Kind.UNLIMITED
            if credits == -1
            else models.Membership.Kind.METERED
        )
        return models.Membership.objects.create(
            user_id=user_id,
            kind=kind,
            package=package,
            credits=credits,
            status=status,
            starts_at=clock.now - timedelta(days=1),
            ends_at=clock.now + ends_in,
        )

    return _make


@pytest.fixture
def make_payment():
    def _make(user_id: int, status: str = models.Payment.Status.SUCCESS) -> models.Payment:
        return models.Payment.objects.create(
            user_id=user_id, status=status, amount="25.00", currency="AUD"
        )

    return _make


@pytest.fixture
def make_booking():
    def _make(
        user_id: int,
        studio_class: models.StudioClass,
        status: str = models.Booking.Status.CONFIRMED,
    ) -> models.Booking:
        return models.Booking.objects.create(
            user_id=user_id, studio_class=studio_class, status=status
        )

    return _make
