"""Domain error codes for the bookings module."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    INVALID_ID = "INVALID_ID"
    INVALID_PACKAGE = "INVALID_PACKAGE"
    CLASS_NOT_FOUND = "CLASS_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    CLASS_FULL = "CLASS_FULL"
    ALREADY_BOOKED = "ALREADY_BOOKED"
    NO_ENTITLEMENT = "NO_ENTITLEMENT"
    PAYMENT_OWNERSHIP_MISMATCH = "PAYMENT_OWNERSHIP_MISMATCH"
    PAYMENT_NOT_SUCCESSFUL = "PAYMENT_NOT_SUCCESSFUL"
    PAYMENT_ALREADY_CONSUMED = "PAYMENT_ALREADY_CONSUMED"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    IMMUTABLE = "IMMUTABLE"
    BUSY = "BUSY"
    STORE_FAILURE = "STORE_FAILURE"


@dataclass(eq=False)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidIdError(DomainError):
    """Raised when an identifier cannot be normalized."""

    def __init__(self, field: str = "id") -> None:
        super().__init__(
            code=ErrorCode.INVALID_ID,
            message=f"Invalid {field} format",
        )
        self.field = field


class InvalidPackageError(DomainError):
    def __init__(self, package: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_PACKAGE,
            message="Unknown membership package",
        )
        self.package = package


class ClassNotFoundError(DomainError):
    """Raised when a class is not found."""

    def __init__(self, class_id: int) -> None:
        super().__init__(
            code=ErrorCode.CLASS_NOT_FOUND,
            message="Class not found",
        )
        self.class_id = class_id


class BookingNotFoundError(DomainError):
    """Raised when a booking is absent or owned by someone else."""

    def __init__(self, booking_id: int) -> None:
        super().__init__(
            code=ErrorCode.BOOKING_NOT_FOUND,
            message="Booking not found",
        )
        self.booking_id = booking_id


class ClassFullError(DomainError):
    def __init__(self, class_id: int) -> None:
        super().__init__(
            code=ErrorCode.CLASS_FULL,
            message="Class is full",
        )
        self.class_id = class_id


class AlreadyBookedError(DomainError):
    def __init__(self, class_id: int) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_BOOKED,
            message="Already booked this class",
        )
        self.class_id = class_id


class EntitlementError(DomainError):
    """Base for failures that mean the member has to pay to book."""


class NoEntitlementError(EntitlementError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.NO_ENTITLEMENT,
            message="No active membership or valid payment provided",
        )


class PaymentNotFoundError(EntitlementError):
    def __init__(self, payment_id: int) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_NOT_FOUND,
            message="Payment not found",
        )
        self.payment_id = payment_id


class PaymentOwnershipMismatchError(EntitlementError):
    def __init__(self, payment_id: int) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_OWNERSHIP_MISMATCH,
            message="Payment does not belong to user",
        )
        self.payment_id = payment_id


class PaymentNotSuccessfulError(EntitlementError):
    def __init__(self, payment_id: int) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_NOT_SUCCESSFUL,
            message="Payment not completed",
        )
        self.payment_id = payment_id


class PaymentAlreadyConsumedError(EntitlementError):
    def __init__(self, payment_id: int) -> None:
        super().__init__(
            code=ErrorCode.PAYMENT_ALREADY_CONSUMED,
            message="Payment already used",
        )
        self.payment_id = payment_id


class AlreadyCancelledError(DomainError):
    def __init__(self, booking_id: int) -> None:
        super().__init__(
            code=ErrorCode.ALREADY_CANCELLED,
            message="Booking is already cancelled",
        )
        self.booking_id = booking_id


class ImmutableBookingError(DomainError):
    def __init__(self, booking_id: int) -> None:
        super().__init__(
            code=ErrorCode.IMMUTABLE,
            message="Completed bookings cannot be changed",
        )
        self.booking_id = booking_id


class BusyError(DomainError):
    """Raised when a row lock could not be acquired before the deadline."""

    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.BUSY,
            message="Resource is busy, try again",
        )


class StoreFailureError(DomainError):
    """Raised when the underlying storage fails.

    ``ambiguous`` is set when the failure happened while committing, in which
    case the commit may or may not have been applied.
    """

    def __init__(self, ambiguous: bool = False) -> None:
        super().__init__(
            code=ErrorCode.STORE_FAILURE,
            message="Storage temporarily unavailable",
        )
        self.ambiguous = ambiguous
