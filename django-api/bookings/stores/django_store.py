"""Django ORM implementation of the LedgerStore.

A unit of work is a ``transaction.atomic()`` block and row locks are
``SELECT ... FOR UPDATE``. On PostgreSQL every unit of work sets a local
``lock_timeout`` so a blocked caller fails with BusyError instead of waiting
indefinitely. Backends without row locks (SQLite) serialize writers on the
whole database instead.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from django.db import DatabaseError, IntegrityError, connection, transaction
from django.db.models import Count, Q
from django.utils import timezone

from bookings import models
from bookings.conf import get_setting
from bookings.domain import (
    Booking,
    BookingId,
    BookingStatus,
    Capacity,
    ClassId,
    ConsumptionRef,
    Credits,
    Membership,
    MembershipId,
    MembershipKind,
    MembershipStatus,
    Payment,
    PaymentId,
    PaymentStatus,
    StudioClass,
    UserId,
)
from bookings.domain.errors import BusyError, StoreFailureError
from bookings.stores.interfaces import DuplicateBookingError, LedgerStore, UnitOfWork

logger = logging.getLogger(__name__)

LOCK_NOT_AVAILABLE = "55P03"


def _is_lock_timeout(exc: BaseException) -> bool:
    cause = exc.__cause__
    sqlstate = getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)
    if sqlstate == LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(exc)


def _translate(exc: DatabaseError, ambiguous: bool = False) -> Exception:
    if not ambiguous and _is_lock_timeout(exc):
        logger.warning("Row lock wait exceeded deadline: %s", exc)
        return BusyError()
    logger.error("Ledger store failure (ambiguous=%s): %s", ambiguous, exc)
    return StoreFailureError(ambiguous=ambiguous)


def _to_class(row: models.StudioClass) -> StudioClass:
    return StudioClass(
        id=ClassId(row.id),
        name=row.name,
        capacity=Capacity(row.capacity),
        day=row.day,
        time=row.time,
        duration_minutes=row.duration_minutes,
    )


def _to_booking(row: models.Booking) -> Booking:
    return Booking(
        id=BookingId(row.id),
        user_id=UserId(row.user_id),
        class_id=ClassId(row.studio_class_id),
        status=BookingStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        membership_id=MembershipId(row.membership_id) if row.membership_id else None,
        payment_id=PaymentId(row.payment_id) if row.payment_id else None,
        cancellation_reason=row.cancellation_reason,
    )


def _to_membership(row: models.Membership) -> Membership:
    return Membership(
        id=MembershipId(row.id),
        user_id=UserId(row.user_id),
        kind=MembershipKind(row.kind),
        package=row.package,
        credits=Credits(row.credits),
        status=MembershipStatus(row.status),
        starts_at=row.starts_at,
        ends_at=row.ends_at,
        payment_id=PaymentId(row.payment_id) if row.payment_id else None,
    )


def _to_payment(row: models.Payment) -> Payment:
    return Payment(
        id=PaymentId(row.id),
        user_id=UserId(row.user_id),
        status=PaymentStatus(row.status),
        amount=str(row.amount),
        currency=row.currency,
    )


def _confirmed_bookings(class_id: ClassId):
    return models.Booking.objects.filter(
        studio_class_id=class_id.value, status=models.Booking.Status.CONFIRMED
    )


def _find_confirmed_booking(user_id: UserId, class_id: ClassId) -> Booking | None:
    row = _confirmed_bookings(class_id).filter(user_id=user_id.value).first()
    return _to_booking(row) if row else None


class DjangoUnitOfWork(UnitOfWork):
    """One ``transaction.atomic()`` block.

    Usage:
        with store.unit_of_work() as uow:
            studio_class = uow.lock_class(class_id)
            ...
        # committed here; on_commit callbacks run afterwards
    """

    def __init__(self, lock_timeout_ms: int) -> None:
        self._lock_timeout_ms = lock_timeout_ms
        self._atomic = None

    def __enter__(self) -> "DjangoUnitOfWork":
        self._atomic = transaction.atomic()
        try:
            self._atomic.__enter__()
        except DatabaseError as exc:
            self._atomic = None
            raise _translate(exc) from exc
        try:
            if connection.vendor == "postgresql" and self._lock_timeout_ms:
                with connection.cursor() as cursor:
                    cursor.execute(
                        f"SET LOCAL lock_timeout = '{int(self._lock_timeout_ms)}ms'"
                    )
        except DatabaseError as exc:
            self._atomic.__exit__(type(exc), exc, exc.__traceback__)
            raise _translate(exc) from exc
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            self._atomic.__exit__(exc_type, exc_val, exc_tb)
        except DatabaseError as exc:
            # Raised while committing: the outcome is unknown to us.
            raise _translate(exc, ambiguous=exc_type is None) from exc
        finally:
            self._atomic = None
        if exc_type is not None and issubclass(exc_type, DatabaseError):
            raise _translate(exc_val) from exc_val
        return False

    def lock_class(self, class_id: ClassId) -> StudioClass | None:
        row = (
            models.StudioClass.objects.select_for_update()
            .filter(pk=class_id.value)
            .first()
        )
        return _to_class(row) if row else None

    def count_confirmed_bookings(self, class_id: ClassId) -> int:
        return _confirmed_bookings(class_id).count()

    def find_confirmed_booking(self, user_id: UserId, class_id: ClassId) -> Booking | None:
        return _find_confirmed_booking(user_id, class_id)

    def list_active_membership_ids(self, user_id: UserId) -> list[MembershipId]:
        ids = (
            models.Membership.objects.filter(
                user_id=user_id.value, status=models.Membership.Status.ACTIVE
            )
            .order_by("ends_at", "id")
            .values_list("id", flat=True)
        )
        return [MembershipId(pk) for pk in ids]

    def lock_membership(self, membership_id: MembershipId) -> Membership | None:
        row = (
            models.Membership.objects.select_for_update()
            .filter(pk=membership_id.value)
            .first()
        )
        return _to_membership(row) if row else None

    def save_membership(self, membership: Membership) -> None:
        models.Membership.objects.filter(pk=membership.id.value).update(
            credits=membership.credits.value,
            status=membership.status.value,
            updated_at=timezone.now(),
        )

    def insert_membership(
        self,
        user_id: UserId,
        kind: MembershipKind,
        package: str,
        credits: Credits,
        starts_at: datetime,
        ends_at: datetime,
        payment_id: PaymentId | None = None,
    ) -> Membership:
        row = models.Membership.objects.create(
            user_id=user_id.value,
            kind=kind.value,
            package=package,
            credits=credits.value,
            status=models.Membership.Status.ACTIVE,
            starts_at=starts_at,
            ends_at=ends_at,
            payment_id=payment_id.value if payment_id else None,
        )
        return _to_membership(row)

    def lock_payment(self, payment_id: PaymentId) -> Payment | None:
        row = (
            models.Payment.objects.select_for_update()
            .filter(pk=payment_id.value)
            .first()
        )
        return _to_payment(row) if row else None

    def payment_is_consumed(self, payment_id: PaymentId) -> bool:
        return (
            models.Booking.objects.filter(payment_id=payment_id.value).exists()
            or models.Membership.objects.filter(payment_id=payment_id.value).exists()
        )

    def insert_booking(
        self, user_id: UserId, class_id: ClassId, ref: ConsumptionRef
    ) -> Booking:
        membership_id = ref.membership_id
        payment_id = ref.payment_id
        try:
            # Savepoint so the outer transaction stays usable after a conflict.
            with transaction.atomic():
                row = models.Booking.objects.create(
                    user_id=user_id.value,
                    studio_class_id=class_id.value,
                    status=models.Booking.Status.CONFIRMED,
                    membership_id=membership_id.value if membership_id else None,
                    payment_id=payment_id.value if payment_id else None,
                )
        except IntegrityError as exc:
            raise DuplicateBookingError(str(exc)) from exc
        return _to_booking(row)

    def lock_booking(self, booking_id: BookingId) -> Booking | None:
        row = (
            models.Booking.objects.select_for_update()
            .filter(pk=booking_id.value)
            .first()
        )
        return _to_booking(row) if row else None

    def save_booking(self, booking: Booking) -> None:
        models.Booking.objects.filter(pk=booking.id.value).update(
            status=booking.status.value,
            cancellation_reason=booking.cancellation_reason,
            updated_at=timezone.now(),
        )

    def lock_lapsed_membership_ids(self, now: datetime, limit: int) -> list[MembershipId]:
        qs = models.Membership.objects.filter(
            status=models.Membership.Status.ACTIVE, ends_at__lte=now
        ).order_by("ends_at", "id")
        if connection.features.has_select_for_update_skip_locked:
            qs = qs.select_for_update(skip_locked=True)
        else:
            qs = qs.select_for_update()
        return [MembershipId(pk) for pk in qs.values_list("id", flat=True)[:limit]]

    def expire_memberships(self, membership_ids: list[MembershipId]) -> int:
        if not membership_ids:
            return 0
        return models.Membership.objects.filter(
            pk__in=[mid.value for mid in membership_ids],
            status=models.Membership.Status.ACTIVE,
        ).update(status=models.Membership.Status.EXPIRED, updated_at=timezone.now())

    def on_commit(self, callback: Callable[[], None]) -> None:
        transaction.on_commit(callback)


class DjangoLedgerStore(LedgerStore):
    """PostgreSQL-backed ledger store using Django ORM."""

    def __init__(self, lock_timeout_ms: int | None = None) -> None:
        if lock_timeout_ms is None:
            lock_timeout_ms = get_setting("LOCK_TIMEOUT_MS")
        self._lock_timeout_ms = lock_timeout_ms

    def unit_of_work(self) -> DjangoUnitOfWork:
        return DjangoUnitOfWork(self._lock_timeout_ms)

    def get_class(self, class_id: ClassId) -> StudioClass | None:
        row = models.StudioClass.objects.filter(pk=class_id.value).first()
        return _to_class(row) if row else None

    def count_confirmed_bookings(self, class_id: ClassId) -> int:
        return _confirmed_bookings(class_id).count()

    def list_classes(self) -> list[StudioClass]:
        return [_to_class(row) for row in models.StudioClass.objects.order_by("id")]

    def confirmed_counts(self) -> dict[ClassId, int]:
        rows = (
            models.Booking.objects.filter(status=models.Booking.Status.CONFIRMED)
            .values("studio_class_id")
            .annotate(confirmed=Count("id"))
            .order_by()
        )
        return {ClassId(row["studio_class_id"]): row["confirmed"] for row in rows}

    def list_bookings(self, user_id: UserId) -> list[Booking]:
        rows = models.Booking.objects.filter(user_id=user_id.value).order_by(
            "-created_at", "-id"
        )
        return [_to_booking(row) for row in rows]

    def list_memberships(self, user_id: UserId) -> list[Membership]:
        rows = models.Membership.objects.filter(user_id=user_id.value).order_by(
            "-created_at", "-id"
        )
        return [_to_membership(row) for row in rows]

    def find_next_membership(self, user_id: UserId, now: datetime) -> Membership | None:
        row = (
            models.Membership.objects.filter(
                user_id=user_id.value,
                status=models.Membership.Status.ACTIVE,
                ends_at__gt=now,
            )
            .filter(~Q(credits=0))
            .order_by("ends_at", "id")
            .first()
        )
        return _to_membership(row) if row else None
