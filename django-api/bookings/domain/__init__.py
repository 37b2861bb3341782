from bookings.domain.models import (
    Booking,
    BookingStatus,
    ClassAvailability,
    ConsumptionKind,
    ConsumptionRef,
    Membership,
    MembershipKind,
    MembershipStatus,
    Payment,
    PaymentStatus,
    StudioClass,
)
from bookings.domain.value_objects import (
    BookingId,
    Capacity,
    ClassId,
    Credits,
    MembershipId,
    PaymentId,
    UserId,
)

__all__ = [
    "Booking",
    "BookingStatus",
    "ClassAvailability",
    "ConsumptionKind",
    "ConsumptionRef",
    "Membership",
    "MembershipKind",
    "MembershipStatus",
    "Payment",
    "PaymentStatus",
    "StudioClass",
    "BookingId",
    "ClassId",
    "MembershipId",
    "PaymentId",
    "UserId",
    "Capacity",
    "Credits",
]
