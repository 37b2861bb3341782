from django.urls import path

from bookings.handlers import (
    BookingCancelView,
    BookingListView,
    ClassAvailabilityView,
    ClassListView,
    CurrentMembershipView,
    MembershipListView,
)

urlpatterns = [
    path("bookings", BookingListView.as_view(), name="booking-list"),
    path(
        "bookings/<str:booking_id>/cancel",
        BookingCancelView.as_view(),
        name="booking-cancel",
    ),
    path("memberships", MembershipListView.as_view(), name="membership-list"),
    path(
        "memberships/current",
        CurrentMembershipView.as_view(),
        name="membership-current",
    ),
    path("classes", ClassListView.as_view(), name="class-list"),
    path(
        "classes/<str:class_id>/availability",
        ClassAvailabilityView.as_view(),
        name="class-availability",
    ),
]
