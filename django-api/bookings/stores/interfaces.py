"""Store interfaces (repository pattern).

Stores must be swappable and return domain models.

A ``UnitOfWork`` is one all-or-nothing transaction. Every ``lock_*`` method
takes an exclusive row lock that is held until the unit of work ends and
returns the latest committed state of the row.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime

from bookings.domain import (
    Booking,
    BookingId,
    ClassId,
    ConsumptionRef,
    Credits,
    Membership,
    MembershipId,
    MembershipKind,
    Payment,
    PaymentId,
    StudioClass,
    UserId,
)


class DuplicateBookingError(Exception):
    """Raised by insert_booking when a uniqueness constraint rejects the row."""


class UnitOfWork(ABC):
    """Row operations available inside one transaction."""

    @abstractmethod
    def lock_class(self, class_id: ClassId) -> StudioClass | None:
        """Lock and return a class, or None if it does not exist."""
        ...

    @abstractmethod
    def count_confirmed_bookings(self, class_id: ClassId) -> int:
        ...

    @abstractmethod
    def find_confirmed_booking(self, user_id: UserId, class_id: ClassId) -> Booking | None:
        ...

    @abstractmethod
    def list_active_membership_ids(self, user_id: UserId) -> list[MembershipId]:
        """Return ids of the user's active memberships, soonest end time first.

        Rows whose end time already passed are included; callers decide.
        """
        ...

    @abstractmethod
    def lock_membership(self, membership_id: MembershipId) -> Membership | None:
        ...

    @abstractmethod
    def save_membership(self, membership: Membership) -> None:
        """Persist credits and status of a membership."""
        ...

    @abstractmethod
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
        ...

    @abstractmethod
    def lock_payment(self, payment_id: PaymentId) -> Payment | None:
        ...

    @abstractmethod
    def payment_is_consumed(self, payment_id: PaymentId) -> bool:
        """Check if a booking or a membership purchase already used the payment."""
        ...

    @abstractmethod
    def insert_booking(
        self, user_id: UserId, class_id: ClassId, ref: ConsumptionRef
    ) -> Booking:
        """Insert a confirmed booking.

        Raises:
            DuplicateBookingError: If a uniqueness constraint rejects the row.
        """
        ...

    @abstractmethod
    def lock_booking(self, booking_id: BookingId) -> Booking | None:
        ...

    @abstractmethod
    def save_booking(self, booking: Booking) -> None:
        """Persist status and cancellation reason of a booking."""
        ...

    @abstractmethod
    def lock_lapsed_membership_ids(self, now: datetime, limit: int) -> list[MembershipId]:
        """Lock up to ``limit`` active memberships that ended before ``now``.

        Rows already locked by another unit of work are skipped.
        """
        ...

    @abstractmethod
    def expire_memberships(self, membership_ids: list[MembershipId]) -> int:
        """Flip the given active memberships to expired, returning how many changed."""
        ...

    @abstractmethod
    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` after a successful commit; dropped on rollback."""
        ...


class LedgerStore(ABC):
    """Interface for booking ledger persistence."""

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[UnitOfWork]:
        """Open a transaction.

        Raises:
            BusyError: If a row lock was not acquired before the lock timeout.
            StoreFailureError: On any other storage failure.
        """
        ...

    @abstractmethod
    def get_class(self, class_id: ClassId) -> StudioClass | None:
        ...

    @abstractmethod
    def count_confirmed_bookings(self, class_id: ClassId) -> int:
        ...

    @abstractmethod
    def list_classes(self) -> list[StudioClass]:
        """Return every class, ordered by id."""
        ...

    @abstractmethod
    def confirmed_counts(self) -> dict[ClassId, int]:
        """Return confirmed booking counts keyed by class; classes with none are absent."""
        ...

    @abstractmethod
    def list_bookings(self, user_id: UserId) -> list[Booking]:
        """Return the user's bookings, newest first."""
        ...

    @abstractmethod
    def list_memberships(self, user_id: UserId) -> list[Membership]:
        """Return the user's memberships, newest first."""
        ...

    @abstractmethod
    def find_next_membership(self, user_id: UserId, now: datetime) -> Membership | None:
        """Return the usable membership that expires soonest, if any."""
        ...
