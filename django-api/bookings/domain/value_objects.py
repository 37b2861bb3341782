"""Domain primitives that enforce validity at creation time."""

from dataclasses import dataclass
from typing import Self


def _positive_int(raw: object) -> int:
    """Normalize an identifier arriving as int, integral float or digit string."""
    if isinstance(raw, bool):
        raise ValueError("Identifier cannot be a boolean")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            raise ValueError("Identifier must be integral")
        value = int(raw)
    elif isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        raise ValueError(f"Unsupported identifier: {raw!r}")
    if value <= 0:
        raise ValueError("Identifier must be positive")
    if value >= 2**63:
        raise ValueError("Identifier out of range")
    return value


@dataclass(frozen=True)
class _IntId:
    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int) or self.value <= 0:
            raise ValueError(f"{type(self).__name__} must be a positive integer")

    @classmethod
    def from_raw(cls, raw: object) -> Self:
        return cls(value=_positive_int(raw))

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class UserId(_IntId):
    """Identity of a member, normalized once at the trust boundary."""


@dataclass(frozen=True)
class ClassId(_IntId):
    """Unique identifier for a StudioClass."""


@dataclass(frozen=True)
class BookingId(_IntId):
    """Unique identifier for a Booking."""


@dataclass(frozen=True)
class MembershipId(_IntId):
    """Unique identifier for a Membership."""


@dataclass(frozen=True)
class PaymentId(_IntId):
    """Unique identifier for a Payment."""


@dataclass(frozen=True)
class Capacity:
    """Number of seats in a class. A class always has at least one."""

    value: int

    def __post_init__(self) -> None:
        if self.value < 1:
            raise ValueError("Capacity must be at least 1")

    def admits(self, confirmed: int) -> bool:
        return confirmed < self.value


UNLIMITED_CREDITS = -1


@dataclass(frozen=True)
class Credits:
    """Remaining membership credits; -1 means unlimited."""

    value: int

    def __post_init__(self) -> None:
        if self.value < UNLIMITED_CREDITS:
            raise ValueError("Credits cannot be below -1")

    @classmethod
    def unlimited(cls) -> Self:
        return cls(value=UNLIMITED_CREDITS)

    @property
    def is_unlimited(self) -> bool:
        return self.value == UNLIMITED_CREDITS

    @property
    def is_exhausted(self) -> bool:
        return self.value == 0

    def debit(self) -> Self:
        if self.is_unlimited:
            return self
        if self.value == 0:
            raise ValueError("No credits left to debit")
        return type(self)(value=self.value - 1)

    def __str__(self) -> str:
        return "unlimited" if self.is_unlimited else str(self.value)
