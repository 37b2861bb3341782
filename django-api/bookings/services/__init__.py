from bookings.services.admission import Admission, CapacityAdmissionController
from bookings.services.entitlements import EntitlementResolver
from bookings.services.expiry import ExpirySweeper
from bookings.services.memberships import PACKAGES, MembershipService
from bookings.services.reservations import ReservationService

__all__ = [
    "Admission",
    "CapacityAdmissionController",
    "EntitlementResolver",
    "ExpirySweeper",
    "MembershipService",
    "PACKAGES",
    "ReservationService",
]
