"""Domain models representing persisted state.

These are pure domain objects with no API input rules.
Django ORM models are in bookings/models.py (persistence layer).
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from bookings.domain.value_objects import (
    BookingId,
    Capacity,
    ClassId,
    Credits,
    MembershipId,
    PaymentId,
    UserId,
)


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class MembershipKind(str, Enum):
    METERED = "metered"
    UNLIMITED = "unlimited"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    CREATED = "created"
    SUCCESS = "success"
    FAILED = "failed"


class ConsumptionKind(str, Enum):
    MEMBERSHIP = "membership"
    PAYMENT = "payment"


@dataclass(frozen=True)
class StudioClass:
    """Domain representation of a bookable class."""

    id: ClassId
    name: str
    capacity: Capacity
    day: str
    time: str
    duration_minutes: int

    @property
    def schedule(self) -> str:
        return f"{self.day} {self.time}".strip()


@dataclass(frozen=True)
class Membership:
    """Domain representation of a Membership.

    Transitions return new instances; persisting them is the store's job.
    """

    id: MembershipId
    user_id: UserId
    kind: MembershipKind
    package: str
    credits: Credits
    status: MembershipStatus
    starts_at: datetime
    ends_at: datetime
    payment_id: PaymentId | None = None

    @property
    def is_active(self) -> bool:
        return self.status is MembershipStatus.ACTIVE

    def has_lapsed(self, now: datetime) -> bool:
        return self.ends_at <= now

    def expire(self) -> "Membership":
        return replace(self, status=MembershipStatus.EXPIRED)

    def debit(self) -> "Membership":
        """Spend one credit; the last credit expires the membership in the same step."""
        credits = self.credits.debit()
        status = MembershipStatus.EXPIRED if credits.is_exhausted else self.status
        return replace(self, credits=credits, status=status)


@dataclass(frozen=True)
class Payment:
    """Verified payment fact as recorded by the payment gateway flow."""

    id: PaymentId
    user_id: UserId
    status: PaymentStatus
    amount: str
    currency: str

    @property
    def is_successful(self) -> bool:
        return self.status is PaymentStatus.SUCCESS


@dataclass(frozen=True)
class ConsumptionRef:
    """The membership or payment that authorized a booking."""

    kind: ConsumptionKind
    id: int

    @classmethod
    def for_membership(cls, membership_id: MembershipId) -> "ConsumptionRef":
        return cls(kind=ConsumptionKind.MEMBERSHIP, id=membership_id.value)

    @classmethod
    def for_payment(cls, payment_id: PaymentId) -> "ConsumptionRef":
        return cls(kind=ConsumptionKind.PAYMENT, id=payment_id.value)

    @property
    def membership_id(self) -> MembershipId | None:
        if self.kind is ConsumptionKind.MEMBERSHIP:
            return MembershipId(self.id)
        return None

    @property
    def payment_id(self) -> PaymentId | None:
        if self.kind is ConsumptionKind.PAYMENT:
            return PaymentId(self.id)
        return None


@dataclass(frozen=True)
class Booking:
    """Domain representation of a Booking."""

    id: BookingId
    user_id: UserId
    class_id: ClassId
    status: BookingStatus
    created_at: datetime
    updated_at: datetime
    membership_id: MembershipId | None = None
    payment_id: PaymentId | None = None
    cancellation_reason: str = ""

    @property
    def is_confirmed(self) -> bool:
        return self.status is BookingStatus.CONFIRMED

    def cancel(self, reason: str) -> "Booking":
        return replace(self, status=BookingStatus.CANCELLED, cancellation_reason=reason)


@dataclass(frozen=True)
class ClassAvailability:
    """Live seat usage for a class."""

    studio_class: StudioClass
    slots_booked: int

    @property
    def is_full(self) -> bool:
        return not self.studio_class.capacity.admits(self.slots_booked)

    @property
    def slots_left(self) -> int:
        return max(self.studio_class.capacity.value - self.slots_booked, 0)
