"""Tests for the expiry sweeper and its Celery tasks.

Run with: pytest tests/test_expiry.py -v
"""

import importlib
import logging
from datetime import timedelta
from unittest import mock

import pytest
from django.core.cache import cache

from bookings import models, tasks
from bookings.services import ExpirySweeper

USER = 7


@pytest.mark.django_db
class TestExpirySweeper:
    """Tests for ExpirySweeper.run."""

    def test_expires_lapsed_active_memberships(self, store, clock, make_membership):
        lapsed = make_membership(USER, credits=4, ends_in=timedelta(hours=-1))
        current = make_membership(USER, credits=4, ends_in=timedelta(days=3))

        expired = ExpirySweeper(store, clock=clock).run()

        assert expired == 1
        lapsed.refresh_from_db()
        current.refresh_from_db()
        assert lapsed.status == models.Membership.Status.EXPIRED
        assert lapsed.credits == 4
        assert current.status == models.Membership.Status.ACTIVE

    def test_membership_ending_exactly_now_is_expired(self, store, clock, make_membership):
        membership = make_membership(USER, ends_in=timedelta(0))

        assert ExpirySweeper(store, clock=clock).run() == 1
        membership.refresh_from_db()
        assert membership.status == models.Membership.Status.EXPIRED

    def test_is_idempotent(self, store, clock, make_membership):
        make_membership(USER, ends_in=timedelta(days=-2))
        sweeper = ExpirySweeper(store, clock=clock)

        assert sweeper.run() == 1
        assert sweeper.run() == 0
        assert models.Membership.objects.filter(
            status=models.Membership.Status.EXPIRED
        ).count() == 1

    def test_expires_in_batches(self, store, clock, make_membership):
        for offset in range(5):
            make_membership(USER + offset, ends_in=timedelta(hours=-(offset + 1)))

        expired = ExpirySweeper(store, batch_size=2, clock=clock).run()

        assert expired == 5
        assert not models.Membership.objects.filter(
            status=models.Membership.Status.ACTIVE
        ).exists()

    def test_nothing_to_expire(self, store, clock, make_membership):
        make_membership(USER, ends_in=timedelta(days=1))

        assert ExpirySweeper(store, clock=clock).run() == 0

    def test_batch_size_defaults_from_settings(self, store, settings):
        settings.BOOKINGS = {**settings.BOOKINGS, "EXPIRY_SWEEP_BATCH_SIZE": 7}

        assert ExpirySweeper(store)._batch_size == 7


@pytest.mark.django_db
class TestExpireLapsedMembershipsTask:
    """Tests for the expire_lapsed_memberships task."""

    def test_runs_sweep_and_releases_lock(self, make_membership):
        make_membership(USER, ends_in=timedelta(hours=-3))

        result = tasks.expire_lapsed_memberships()

        assert result == {"expired": 1, "skipped": False}
        assert cache.get(tasks.SWEEP_LOCK_KEY) is None

    def test_skips_while_another_sweep_holds_the_lock(self, make_membership, caplog):
        membership = make_membership(USER, ends_in=timedelta(hours=-3))
        cache.add(tasks.SWEEP_LOCK_KEY, "someone-else", timeout=60)

        with caplog.at_level(logging.INFO, logger="bookings"):
            result = tasks.expire_lapsed_memberships()

        assert result == {"expired": 0, "skipped": True}
        assert "already in flight" in caplog.text
        assert cache.get(tasks.SWEEP_LOCK_KEY) == "someone-else"
        membership.refresh_from_db()
        assert membership.status == models.Membership.Status.ACTIVE

    def test_overlap_lock_is_shared_across_workers_by_default(self, monkeypatch):
        """Outside tests the lock lives in Redis, visible to every worker process."""
        from config import settings as project_settings

        monkeypatch.delenv("CACHE_BACKEND", raising=False)
        monkeypatch.delenv("CACHE_LOCATION", raising=False)
        monkeypatch.setenv("REDIS_URL", "redis://cache.internal:6379")
        try:
            default = importlib.reload(project_settings).CACHES["default"]
        finally:
            monkeypatch.undo()
            importlib.reload(project_settings)

        assert default["BACKEND"] == "django.core.cache.backends.redis.RedisCache"
        assert default["LOCATION"] == "redis://cache.internal:6379/1"

    def test_lock_released_when_sweep_fails(self):
        with mock.patch.object(tasks, "run_expiry_sweep", side_effect=RuntimeError("db")):
            with pytest.raises(RuntimeError):
                tasks.expire_lapsed_memberships()

        assert cache.get(tasks.SWEEP_LOCK_KEY) is None


class TestScheduleExpirySweep:
    def test_enqueues_sweep_with_jitter(self, settings):
        settings.BOOKINGS = {**settings.BOOKINGS, "EXPIRY_SWEEP_JITTER": 30}

        with mock.patch.object(tasks.expire_lapsed_memberships, "apply_async") as apply_async:
            delay = tasks.schedule_expiry_sweep()

        assert 0 <= delay <= 30
        apply_async.assert_called_once_with(countdown=delay)

    def test_zero_jitter_runs_immediately(self, settings):
        settings.BOOKINGS = {**settings.BOOKINGS, "EXPIRY_SWEEP_JITTER": 0}

        with mock.patch.object(tasks.expire_lapsed_memberships, "apply_async") as apply_async:
            assert tasks.schedule_expiry_sweep() == 0

        apply_async.assert_called_once_with(countdown=0)


class TestDeliverNotification:
    def test_hands_off_to_delivery_sink(self, caplog):
        with caplog.at_level(logging.INFO, logger="bookings"):
            tasks.deliver_notification(7, "booking_confirmed", {"booking_id": 1})

        assert "Notify user 7 with booking_confirmed" in caplog.text

    def test_celery_sink_queues_delivery(self):
        from bookings.services.notifications import CeleryNotificationSink

        with mock.patch.object(tasks.deliver_notification, "delay") as delay:
            CeleryNotificationSink().notify(7, "booking_cancelled", {"booking_id": 1})

        delay.assert_called_once_with(7, "booking_cancelled", {"booking_id": 1})
