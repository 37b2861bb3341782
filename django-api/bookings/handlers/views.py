"""HTTP handlers (views) - handle HTTP concerns only.

Handlers:
- Parse requests and validate input format
- Normalize the authenticated user id once, here
- Call services for business logic
- Map domain errors to HTTP responses
- Never contain business logic
- Never expose internal error details
"""

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.domain import BookingId, ClassId, PaymentId, UserId
from bookings.domain.errors import DomainError, EntitlementError, ErrorCode, InvalidIdError
from bookings.handlers.serializers import (
    BookingCancelSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    ClassAvailabilitySerializer,
    MembershipPurchaseSerializer,
    MembershipSerializer,
)
from bookings.services import MembershipService, ReservationService
from bookings.stores import DjangoLedgerStore

_STATUS_BY_CODE = {
    ErrorCode.INVALID_ID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PACKAGE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CLASS_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BOOKING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CLASS_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_BOOKED: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_CANCELLED: status.HTTP_409_CONFLICT,
    ErrorCode.IMMUTABLE: status.HTTP_409_CONFLICT,
    ErrorCode.BUSY: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.STORE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(error: DomainError) -> Response:
    if isinstance(error, EntitlementError):
        http_status = status.HTTP_402_PAYMENT_REQUIRED
    else:
        http_status = _STATUS_BY_CODE.get(error.code, status.HTTP_400_BAD_REQUEST)
    return Response({"code": error.code.value, "message": error.message}, status=http_status)


def _parse_id(id_type, raw, field: str):
    try:
        return id_type.from_raw(raw)
    except ValueError:
        raise InvalidIdError(field) from None


def _current_user(request: Request) -> UserId:
    return _parse_id(UserId, request.user.pk, "user id")


def _reservations() -> ReservationService:
    return ReservationService(DjangoLedgerStore())


def _memberships() -> MembershipService:
    return MembershipService(DjangoLedgerStore())


class BookingListView(APIView):
    """Handler for GET/POST /api/bookings"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        try:
            bookings = _reservations().list_bookings(_current_user(request))
        except DomainError as error:
            return error_response(error)
        return Response(BookingSerializer(bookings, many=True).data)

    def post(self, request: Request) -> Response:
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment_id = serializer.validated_data.get("payment_id")
        try:
            booking = _reservations().create_booking(
                _current_user(request),
                _parse_id(ClassId, serializer.validated_data["class_id"], "class id"),
                _parse_id(PaymentId, payment_id, "payment id") if payment_id else None,
            )
        except DomainError as error:
            return error_response(error)
        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)


class BookingCancelView(APIView):
    """Handler for POST /api/bookings/{booking_id}/cancel"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request, booking_id: str) -> Response:
        serializer = BookingCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            booking = _reservations().cancel_booking(
                _parse_id(BookingId, booking_id, "booking id"),
                _current_user(request),
                serializer.validated_data["reason"],
            )
        except DomainError as error:
            return error_response(error)
        return Response(BookingSerializer(booking).data)


class MembershipListView(APIView):
    """Handler for GET/POST /api/memberships"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        try:
            memberships = _memberships().list_memberships(_current_user(request))
        except DomainError as error:
            return error_response(error)
        return Response(MembershipSerializer(memberships, many=True).data)

    def post(self, request: Request) -> Response:
        serializer = MembershipPurchaseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            membership = _memberships().purchase(
                _current_user(request),
                _parse_id(PaymentId, serializer.validated_data["payment_id"], "payment id"),
                serializer.validated_data["package"],
            )
        except DomainError as error:
            return error_response(error)
        return Response(MembershipSerializer(membership).data, status=status.HTTP_201_CREATED)


class CurrentMembershipView(APIView):
    """Handler for GET /api/memberships/current"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request) -> Response:
        try:
            membership = _memberships().current_entitlement(_current_user(request))
        except DomainError as error:
            return error_response(error)
        if membership is None:
            return Response({"can_book": False, "membership": None})
        return Response({"can_book": True, "membership": MembershipSerializer(membership).data})


class ClassAvailabilityView(APIView):
    """Handler for GET /api/classes/{class_id}/availability"""

    permission_classes = [AllowAny]

    def get(self, request: Request, class_id: str) -> Response:
        try:
            availability = _reservations().get_availability(
                _parse_id(ClassId, class_id, "class id")
            )
        except DomainError as error:
            return error_response(error)
        return Response(ClassAvailabilitySerializer(availability).data)


class ClassListView(APIView):
    """Handler for GET /api/classes"""

    permission_classes = [AllowAny]

    def get(self, request: Request) -> Response:
        return Response(
            ClassAvailabilitySerializer(_reservations().list_availability(), many=True).data
        )
