"""Capacity admission control for a single class."""

import logging
from dataclasses import dataclass

from bookings.domain import ClassId, StudioClass
from bookings.domain.errors import ClassFullError, ClassNotFoundError
from bookings.stores.interfaces import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
    """Provisional admit decision; binding only once the booking is inserted
    in the same unit of work."""

    studio_class: StudioClass
    confirmed: int

    @property
    def seats_left(self) -> int:
        return self.studio_class.capacity.value - self.confirmed


class CapacityAdmissionController:
    """Decides whether a class has room for one more confirmed booking."""

    def try_admit(self, uow: UnitOfWork, class_id: ClassId) -> Admission:
        """Admit one more booking into the class.

        Takes the class row lock (a no-op if the unit of work already holds
        it), so every admission decision for a class is serialized and the
        count below cannot go stale before the booking is inserted.

        Raises:
            ClassNotFoundError: If the class does not exist.
            ClassFullError: If confirmed bookings already fill the capacity.
        """
        studio_class = uow.lock_class(class_id)
        if studio_class is None:
            raise ClassNotFoundError(class_id.value)

        confirmed = uow.count_confirmed_bookings(class_id)
        if not studio_class.capacity.admits(confirmed):
            logger.info(
                "Class %s is full (%d/%d)",
                class_id,
                confirmed,
                studio_class.capacity.value,
            )
            raise ClassFullError(class_id.value)

        return Admission(studio_class=studio_class, confirmed=confirmed)
