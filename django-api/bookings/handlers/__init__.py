from bookings.handlers.views import (
    BookingCancelView,
    BookingListView,
    ClassAvailabilityView,
    ClassListView,
    CurrentMembershipView,
    MembershipListView,
)

__all__ = [
    "BookingCancelView",
    "BookingListView",
    "ClassAvailabilityView",
    "ClassListView",
    "CurrentMembershipView",
    "MembershipListView",
]
