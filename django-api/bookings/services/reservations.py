"""Reservation service - booking and cancellation.

Services:
- Depend only on interfaces (stores)
- Validate domain invariants
- Perform orchestration and error mapping
- Return domain models or domain errors

A booking decision is one unit of work: lock the class, check capacity and
duplicates, consume an entitlement, insert the booking. Any failure rolls all
of it back.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from functools import partial
from typing import TypeVar

from django.utils import timezone

from bookings.domain import (
    Booking,
    BookingId,
    BookingStatus,
    ClassAvailability,
    ClassId,
    ConsumptionRef,
    PaymentId,
    UserId,
)
from bookings.domain.errors import (
    AlreadyBookedError,
    AlreadyCancelledError,
    BookingNotFoundError,
    ClassNotFoundError,
    DomainError,
    ImmutableBookingError,
    PaymentAlreadyConsumedError,
    StoreFailureError,
)
from bookings.services.admission import CapacityAdmissionController
from bookings.services.entitlements import EntitlementResolver
from bookings.services.notifications import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    NotificationSink,
    get_notification_sink,
    notify_safely,
)
from bookings.stores.interfaces import DuplicateBookingError, LedgerStore, UnitOfWork

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReservationService:
    """Service for class reservations."""

    def __init__(
        self,
        store: LedgerStore,
        admission: CapacityAdmissionController | None = None,
        resolver: EntitlementResolver | None = None,
        notifier: NotificationSink | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._store = store
        self._admission = admission or CapacityAdmissionController()
        self._resolver = resolver or EntitlementResolver(clock=clock)
        self._notifier = notifier or get_notification_sink()

    def create_booking(
        self,
        user_id: UserId,
        class_id: ClassId,
        payment_id: PaymentId | None = None,
    ) -> Booking:
        """Reserve a seat in a class for a user.

        Raises:
            ClassNotFoundError: If the class does not exist.
            ClassFullError: If the class has no seat left.
            AlreadyBookedError: If the user already holds a confirmed booking.
            EntitlementError: If neither a membership nor the payment applies.
            BusyError: If a row lock was not acquired in time.
            StoreFailureError: If storage failed twice.
        """
        return self._run_with_retry(
            partial(self._create_booking, user_id, class_id, payment_id),
            recover=partial(self._find_confirmed, user_id, class_id),
        )

    def cancel_booking(
        self, booking_id: BookingId, user_id: UserId, reason: str = ""
    ) -> Booking:
        """Cancel a confirmed booking.

        The consumed membership credit or payment is not given back.

        Raises:
            BookingNotFoundError: If the booking does not exist or is not the user's.
            AlreadyCancelledError: If the booking is already cancelled.
            ImmutableBookingError: If the booking is completed.
        """
        return self._run_with_retry(
            partial(self._cancel_booking, booking_id, user_id, reason),
            recover=partial(self._find_cancelled, booking_id, user_id),
        )

    def list_bookings(self, user_id: UserId) -> list[Booking]:
        return self._store.list_bookings(user_id)

    def get_availability(self, class_id: ClassId) -> ClassAvailability:
        """Return live seat usage for a class.

        Raises:
            ClassNotFoundError: If the class does not exist.
        """
        studio_class = self._store.get_class(class_id)
        if studio_class is None:
            raise ClassNotFoundError(class_id.value)
        return ClassAvailability(
            studio_class=studio_class,
            slots_booked=self._store.count_confirmed_bookings(class_id),
        )

    def list_availability(self) -> list[ClassAvailability]:
        """Return live seat usage for every class in the catalog."""
        counts = self._store.confirmed_counts()
        return [
            ClassAvailability(
                studio_class=studio_class,
                slots_booked=counts.get(studio_class.id, 0),
            )
            for studio_class in self._store.list_classes()
        ]

    def _create_booking(
        self, user_id: UserId, class_id: ClassId, payment_id: PaymentId | None
    ) -> Booking:
        with self._store.unit_of_work() as uow:
            admission = self._admission.try_admit(uow, class_id)

            if uow.find_confirmed_booking(user_id, class_id) is not None:
                raise AlreadyBookedError(class_id.value)

            ref = self._resolver.resolve_and_consume(uow, user_id, class_id, payment_id)

            try:
                booking = uow.insert_booking(user_id, class_id, ref)
            except DuplicateBookingError as exc:
                raise self._conflict_error(uow, user_id, class_id, ref) from exc

            studio_class = admission.studio_class
            uow.on_commit(
                partial(
                    notify_safely,
                    self._notifier,
                    user_id.value,
                    BOOKING_CONFIRMED,
                    {
                        "booking_id": booking.id.value,
                        "class_name": studio_class.name,
                        "schedule": studio_class.schedule,
                    },
                )
            )

        logger.info(
            "Booking %s confirmed for user %s in class %s via %s %s",
            booking.id,
            user_id,
            class_id,
            ref.kind.value,
            ref.id,
        )
        return booking

    def _cancel_booking(
        self, booking_id: BookingId, user_id: UserId, reason: str
    ) -> Booking:
        with self._store.unit_of_work() as uow:
            booking = uow.lock_booking(booking_id)
            if booking is None or booking.user_id != user_id:
                raise BookingNotFoundError(booking_id.value)
            if booking.status is BookingStatus.CANCELLED:
                raise AlreadyCancelledError(booking_id.value)
            if booking.status is BookingStatus.COMPLETED:
                raise ImmutableBookingError(booking_id.value)

            cancelled = booking.cancel(reason)
            uow.save_booking(cancelled)
            uow.on_commit(
                partial(
                    notify_safely,
                    self._notifier,
                    user_id.value,
                    BOOKING_CANCELLED,
                    {
                        "booking_id": booking_id.value,
                        "class_id": booking.class_id.value,
                        "reason": reason,
                    },
                )
            )

        logger.info("Booking %s cancelled by user %s", booking_id, user_id)
        return cancelled

    def _conflict_error(
        self, uow: UnitOfWork, user_id: UserId, class_id: ClassId, ref: ConsumptionRef
    ) -> DomainError:
        # The locks above should make this unreachable; the constraints are the backstop.
        payment_id = ref.payment_id
        if payment_id is not None and uow.payment_is_consumed(payment_id):
            return PaymentAlreadyConsumedError(payment_id.value)
        return AlreadyBookedError(class_id.value)

    def _find_confirmed(self, user_id: UserId, class_id: ClassId) -> Booking | None:
        with self._store.unit_of_work() as uow:
            return uow.find_confirmed_booking(user_id, class_id)

    def _find_cancelled(self, booking_id: BookingId, user_id: UserId) -> Booking | None:
        with self._store.unit_of_work() as uow:
            booking = uow.lock_booking(booking_id)
        if (
            booking is not None
            and booking.user_id == user_id
            and booking.status is BookingStatus.CANCELLED
        ):
            return booking
        return None

    def _run_with_retry(
        self, operation: Callable[[], T], recover: Callable[[], T | None]
    ) -> T:
        """Run ``operation``, retrying once on a storage failure.

        A failure during commit is ambiguous, so state is re-read first: if the
        write turns out to have landed, its result is returned instead.
        """
        try:
            return operation()
        except StoreFailureError as exc:
            if exc.ambiguous:
                recovered = recover()
                if recovered is not None:
                    logger.warning("Commit outcome confirmed by re-read after store failure")
                    return recovered
            logger.warning("Retrying once after store failure")
        return operation()
