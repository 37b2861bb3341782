from bookings.stores.django_store import DjangoLedgerStore, DjangoUnitOfWork
from bookings.stores.interfaces import DuplicateBookingError, LedgerStore, UnitOfWork

__all__ = [
    "DjangoLedgerStore",
    "DjangoUnitOfWork",
    "DuplicateBookingError",
    "LedgerStore",
    "UnitOfWork",
]
