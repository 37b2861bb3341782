"""Tests for the reservation service.

These test booking and cancellation end to end against the ORM store.
Run with: pytest tests/test_reservations.py -v
"""

import logging
from datetime import timedelta
from unittest import mock

import pytest

from bookings import models
from bookings.domain import (
    BookingId,
    BookingStatus,
    ClassId,
    MembershipId,
    PaymentId,
    UserId,
)
from bookings.domain.errors import (
    AlreadyBookedError,
    AlreadyCancelledError,
    BookingNotFoundError,
    ClassFullError,
    ClassNotFoundError,
    ImmutableBookingError,
    NoEntitlementError,
    PaymentAlreadyConsumedError,
    StoreFailureError,
)
from bookings.services import ReservationService
from bookings.services.notifications import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    NotificationSink,
)

USER = 7
OTHER_USER = 8


class FailingSink(NotificationSink):
    def notify(self, recipient, template, context) -> None:
        raise ConnectionError("mail relay down")


@pytest.fixture
def service(store, sink, clock) -> ReservationService:
    return ReservationService(store, notifier=sink, clock=clock)


@pytest.mark.django_db
class TestCreateBooking:
    """Tests for ReservationService.create_booking."""

    def test_books_with_membership(self, service, make_class, make_membership):
        studio_class = make_class()
        membership = make_membership(USER, credits=5)

        booking = service.create_booking(UserId(USER), ClassId(studio_class.id))

        assert booking.status is BookingStatus.CONFIRMED
        assert booking.membership_id == MembershipId(membership.id)
        assert booking.payment_id is None
        membership.refresh_from_db()
        assert membership.credits == 4

    def test_books_with_payment(self, service, make_class, make_payment):
        studio_class = make_class()
        payment = make_payment(USER)

        booking = service.create_booking(
            UserId(USER), ClassId(studio_class.id), PaymentId(payment.id)
        )

        assert booking.payment_id == PaymentId(payment.id)
        assert booking.membership_id is None

    def test_unknown_class(self, service, make_membership):
        make_membership(USER)

        with pytest.raises(ClassNotFoundError):
            service.create_booking(UserId(USER), ClassId(4242))

    def test_full_class_consumes_nothing(
        self, service, make_class, make_membership, make_booking
    ):
        """A ClassFull outcome never debits a membership."""
        studio_class = make_class(capacity=1)
        make_booking(OTHER_USER, studio_class)
        membership = make_membership(USER, credits=5)

        with pytest.raises(ClassFullError):
            service.create_booking(UserId(USER), ClassId(studio_class.id))

        membership.refresh_from_db()
        assert membership.credits == 5

    def test_duplicate_booking_consumes_nothing(
        self, service, make_class, make_membership
    ):
        studio_class = make_class()
        membership = make_membership(USER, credits=5)
        service.create_booking(UserId(USER), ClassId(studio_class.id))

        with pytest.raises(AlreadyBookedError):
            service.create_booking(UserId(USER), ClassId(studio_class.id))

        membership.refresh_from_db()
        assert membership.credits == 4

    def test_rebook_after_cancel(self, service, make_class, make_membership):
        studio_class = make_class()
        make_membership(USER, credits=5)
        first = service.create_booking(UserId(USER), ClassId(studio_class.id))
        service.cancel_booking(first.id, UserId(USER))

        second = service.create_booking(UserId(USER), ClassId(studio_class.id))

        assert second.id != first.id
        assert second.is_confirmed

    def test_cancelled_booking_frees_the_seat(
        self, service, make_class, make_membership
    ):
        studio_class = make_class(capacity=1)
        make_membership(USER, credits=-1)
        make_membership(OTHER_USER, credits=-1)
        booking = service.create_booking(UserId(USER), ClassId(studio_class.id))

        service.cancel_booking(booking.id, UserId(USER))

        other = service.create_booking(UserId(OTHER_USER), ClassId(studio_class.id))
        assert other.is_confirmed

    def test_completed_booking_does_not_hold_a_seat(
        self, service, make_class, make_membership, make_booking
    ):
        studio_class = make_class(capacity=1)
        make_booking(OTHER_USER, studio_class, status=models.Booking.Status.COMPLETED)
        make_membership(USER)

        assert service.create_booking(UserId(USER), ClassId(studio_class.id)).is_confirmed

    def test_stale_membership_grants_nothing(self, service, make_class, make_membership):
        """Ended membership with credits left is not used and keeps its credits."""
        studio_class = make_class()
        membership = make_membership(USER, credits=5, ends_in=timedelta(minutes=-1))

        with pytest.raises(NoEntitlementError):
            service.create_booking(UserId(USER), ClassId(studio_class.id))

        membership.refresh_from_db()
        assert membership.credits == 5
        assert not models.Booking.objects.exists()

    def test_unlimited_membership_until_it_lapses(
        self, service, clock, make_class, make_membership
    ):
        make_membership(USER, credits=-1, ends_in=timedelta(days=1))
        first, second = make_class(name="AM"), make_class(name="PM")

        service.create_booking(UserId(USER), ClassId(first.id))
        clock.advance(days=2)

        with pytest.raises(NoEntitlementError):
            service.create_booking(UserId(USER), ClassId(second.id))

    def test_lapsed_unlimited_falls_through_to_payment(
        self, service, clock, make_class, make_membership, make_payment
    ):
        membership = make_membership(USER, credits=-1, ends_in=timedelta(days=1))
        payment = make_payment(USER)
        clock.advance(days=2)

        booking = service.create_booking(
            UserId(USER), ClassId(make_class().id), PaymentId(payment.id)
        )

        assert booking.payment_id == PaymentId(payment.id)
        assert booking.membership_id is None
        membership.refresh_from_db()
        assert membership.status == models.Membership.Status.EXPIRED

    def test_payment_cannot_be_reused(self, service, make_class, make_payment):
        payment = make_payment(USER)
        first, second = make_class(name="AM"), make_class(name="PM")
        service.create_booking(UserId(USER), ClassId(first.id), PaymentId(payment.id))

        with pytest.raises(PaymentAlreadyConsumedError):
            service.create_booking(
                UserId(USER), ClassId(second.id), PaymentId(payment.id)
            )

    def test_confirmation_sent_after_commit(
        self, service, sink, make_class, make_membership, django_capture_on_commit_callbacks
    ):
        studio_class = make_class(name="Hatha")
        make_membership(USER)

        with django_capture_on_commit_callbacks(execute=True):
            booking = service.create_booking(UserId(USER), ClassId(studio_class.id))

        assert sink.sent == [
            (
                USER,
                BOOKING_CONFIRMED,
                {
                    "booking_id": booking.id.value,
                    "class_name": "Hatha",
                    "schedule": "Monday 08:00 AM",
                },
            )
        ]

    def test_no_notification_on_failure(
        self, service, sink, make_class, django_capture_on_commit_callbacks
    ):
        studio_class = make_class()

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(NoEntitlementError):
                service.create_booking(UserId(USER), ClassId(studio_class.id))

        assert callbacks == []
        assert sink.sent == []

    def test_notification_failure_does_not_fail_booking(
        self, store, clock, make_class, make_membership, caplog,
        django_capture_on_commit_callbacks,
    ):
        service = ReservationService(store, notifier=FailingSink(), clock=clock)
        studio_class = make_class()
        make_membership(USER)

        with caplog.at_level(logging.ERROR, logger="bookings"):
            with django_capture_on_commit_callbacks(execute=True):
                booking = service.create_booking(UserId(USER), ClassId(studio_class.id))

        assert booking.is_confirmed
        assert models.Booking.objects.filter(pk=booking.id.value).exists()
        assert "Failed to send booking_confirmed notification" in caplog.text


@pytest.mark.django_db
class TestCancelBooking:
    """Tests for ReservationService.cancel_booking."""

    def test_cancel_keeps_consumed_credit(self, service, make_class, make_membership):
        """Cancelling never refunds the credit that paid for the booking."""
        studio_class = make_class()
        membership = make_membership(USER, credits=2)
        booking = service.create_booking(UserId(USER), ClassId(studio_class.id))

        cancelled = service.cancel_booking(booking.id, UserId(USER), "sick")

        assert cancelled.status is BookingStatus.CANCELLED
        assert cancelled.cancellation_reason == "sick"
        membership.refresh_from_db()
        assert membership.credits == 1

    def test_cancel_keeps_payment_consumed(self, service, make_class, make_payment):
        payment = make_payment(USER)
        first, second = make_class(name="AM"), make_class(name="PM")
        booking = service.create_booking(
            UserId(USER), ClassId(first.id), PaymentId(payment.id)
        )
        service.cancel_booking(booking.id, UserId(USER))

        with pytest.raises(PaymentAlreadyConsumedError):
            service.create_booking(
                UserId(USER), ClassId(second.id), PaymentId(payment.id)
            )

    def test_unknown_booking(self, service):
        with pytest.raises(BookingNotFoundError):
            service.cancel_booking(BookingId(9999), UserId(USER))

    def test_booking_of_another_user(self, service, make_class, make_booking):
        booking = make_booking(OTHER_USER, make_class())

        with pytest.raises(BookingNotFoundError):
            service.cancel_booking(BookingId(booking.id), UserId(USER))

        booking.refresh_from_db()
        assert booking.status == models.Booking.Status.CONFIRMED

    def test_already_cancelled(self, service, make_class, make_booking):
        booking = make_booking(
            USER, make_class(), status=models.Booking.Status.CANCELLED
        )

        with pytest.raises(AlreadyCancelledError):
            service.cancel_booking(BookingId(booking.id), UserId(USER))

    def test_completed_booking_is_immutable(self, service, make_class, make_booking):
        booking = make_booking(
            USER, make_class(), status=models.Booking.Status.COMPLETED
        )

        with pytest.raises(ImmutableBookingError):
            service.cancel_booking(BookingId(booking.id), UserId(USER))

    def test_cancellation_notice(
        self, service, sink, make_class, make_booking, django_capture_on_commit_callbacks
    ):
        studio_class = make_class()
        booking = make_booking(USER, studio_class)

        with django_capture_on_commit_callbacks(execute=True):
            service.cancel_booking(BookingId(booking.id), UserId(USER), "travel")

        assert sink.sent == [
            (
                USER,
                BOOKING_CANCELLED,
                {"booking_id": booking.id, "class_id": studio_class.id, "reason": "travel"},
            )
        ]


@pytest.mark.django_db
class TestQueries:
    def test_list_bookings_newest_first(self, service, make_class, make_membership):
        make_membership(USER, credits=-1)
        first = service.create_booking(UserId(USER), ClassId(make_class(name="AM").id))
        second = service.create_booking(UserId(USER), ClassId(make_class(name="PM").id))

        bookings = service.list_bookings(UserId(USER))

        assert [b.id for b in bookings] == [second.id, first.id]
        assert service.list_bookings(UserId(OTHER_USER)) == []

    def test_availability(self, service, make_class, make_booking):
        studio_class = make_class(capacity=2)
        make_booking(USER, studio_class)
        make_booking(OTHER_USER, studio_class, status=models.Booking.Status.CANCELLED)

        availability = service.get_availability(ClassId(studio_class.id))

        assert availability.slots_booked == 1
        assert availability.slots_left == 1
        assert not availability.is_full

    def test_catalog_counts_confirmed_bookings_only(
        self, service, make_class, make_booking
    ):
        """Every class is listed with live usage; cancelled and completed seats are free."""
        full = make_class(capacity=1, name="Pilates")
        busy = make_class(capacity=3, name="Hatha")
        empty = make_class(capacity=2, name="Yin")
        make_booking(USER, full)
        make_booking(USER, busy)
        make_booking(OTHER_USER, busy, status=models.Booking.Status.CANCELLED)
        make_booking(OTHER_USER + 1, busy, status=models.Booking.Status.COMPLETED)

        catalog = service.list_availability()

        assert [a.studio_class.id for a in catalog] == [
            ClassId(full.id),
            ClassId(busy.id),
            ClassId(empty.id),
        ]
        assert [(a.slots_booked, a.is_full) for a in catalog] == [
            (1, True),
            (1, False),
            (0, False),
        ]

    def test_catalog_empty(self, service):
        assert service.list_availability() == []

    def test_availability_unknown_class(self, service):
        with pytest.raises(ClassNotFoundError):
            service.get_availability(ClassId(4242))


class TestStoreFailureRetry:
    """Storage failures are retried once; ambiguous commits are re-read first."""

    def _service(self) -> ReservationService:
        return ReservationService(mock.Mock(), notifier=mock.Mock())

    def test_retries_once_after_failure(self):
        service = self._service()
        booking = mock.sentinel.booking
        with mock.patch.object(
            service, "_create_booking", side_effect=[StoreFailureError(), booking]
        ) as create:
            assert service.create_booking(UserId(USER), ClassId(1)) is booking
        assert create.call_count == 2

    def test_second_failure_surfaces(self):
        service = self._service()
        with mock.patch.object(
            service,
            "_create_booking",
            side_effect=[StoreFailureError(), StoreFailureError()],
        ):
            with pytest.raises(StoreFailureError):
                service.create_booking(UserId(USER), ClassId(1))

    def test_ambiguous_commit_resolved_by_reread(self):
        service = self._service()
        landed = mock.sentinel.landed
        with mock.patch.object(
            service, "_create_booking", side_effect=StoreFailureError(ambiguous=True)
        ) as create, mock.patch.object(service, "_find_confirmed", return_value=landed):
            assert service.create_booking(UserId(USER), ClassId(1)) is landed
        assert create.call_count == 1

    def test_ambiguous_commit_that_did_not_land_is_retried(self):
        service = self._service()
        booking = mock.sentinel.booking
        with mock.patch.object(
            service,
            "_create_booking",
            side_effect=[StoreFailureError(ambiguous=True), booking],
        ), mock.patch.object(service, "_find_confirmed", return_value=None):
            assert service.create_booking(UserId(USER), ClassId(1)) is booking

    def test_domain_errors_are_not_retried(self):
        service = self._service()
        with mock.patch.object(
            service, "_create_booking", side_effect=ClassFullError(1)
        ) as create:
            with pytest.raises(ClassFullError):
                service.create_booking(UserId(USER), ClassId(1))
        assert create.call_count == 1
