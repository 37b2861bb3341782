"""Entitlement resolution: which membership credit or payment pays for a booking.

Memberships are spent soonest-expiring first so the fewest credits go to
waste. Every candidate is re-read under its row lock before it is touched;
the order ids are listed in is only a plan, the locked row is the truth.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from django.utils import timezone

from bookings.domain import (
    ClassId,
    ConsumptionRef,
    MembershipKind,
    PaymentId,
    UserId,
)
from bookings.domain.errors import (
    NoEntitlementError,
    PaymentAlreadyConsumedError,
    PaymentNotFoundError,
    PaymentNotSuccessfulError,
    PaymentOwnershipMismatchError,
)
from bookings.stores.interfaces import UnitOfWork

logger = logging.getLogger(__name__)


class EntitlementResolver:
    """Finds and consumes the entitlement that authorizes one booking."""

    def __init__(self, clock: Callable[[], datetime] = timezone.now) -> None:
        self._clock = clock

    def resolve_and_consume(
        self,
        uow: UnitOfWork,
        user_id: UserId,
        class_id: ClassId,
        payment_id: PaymentId | None = None,
    ) -> ConsumptionRef:
        """Consume a membership credit, else the supplied payment.

        Any membership flipped to expired along the way is written in ``uow``
        and rolls back with it.

        Raises:
            PaymentNotFoundError: If the payment does not exist.
            PaymentOwnershipMismatchError: If the payment belongs to another user.
            PaymentNotSuccessfulError: If the payment has not succeeded.
            PaymentAlreadyConsumedError: If the payment was already used.
            NoEntitlementError: If no membership applies and no payment was given.
        """
        ref = self._consume_membership(uow, user_id)
        if ref is not None:
            return ref

        if payment_id is not None:
            return self._consume_payment(uow, user_id, payment_id)

        logger.info("User %s has no entitlement for class %s", user_id, class_id)
        raise NoEntitlementError()

    def _consume_membership(self, uow: UnitOfWork, user_id: UserId) -> ConsumptionRef | None:
        now = self._clock()
        for membership_id in uow.list_active_membership_ids(user_id):
            membership = uow.lock_membership(membership_id)
            if membership is None or not membership.is_active:
                continue

            if membership.has_lapsed(now):
                uow.save_membership(membership.expire())
                logger.info("Expired stale membership %s during booking", membership.id)
                continue

            if membership.kind is MembershipKind.UNLIMITED:
                return ConsumptionRef.for_membership(membership.id)

            if membership.credits.value > 0:
                debited = membership.debit()
                uow.save_membership(debited)
                logger.debug(
                    "Debited membership %s, %s credits left",
                    membership.id,
                    debited.credits,
                )
                return ConsumptionRef.for_membership(membership.id)

            # Metered with no credits left: the debit that emptied it should
            # have expired it already.
            logger.warning("Active membership %s has no credits", membership.id)

        return None

    def _consume_payment(
        self, uow: UnitOfWork, user_id: UserId, payment_id: PaymentId
    ) -> ConsumptionRef:
        payment = uow.lock_payment(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id.value)
        if payment.user_id != user_id:
            raise PaymentOwnershipMismatchError(payment_id.value)
        if not payment.is_successful:
            raise PaymentNotSuccessfulError(payment_id.value)
        if uow.payment_is_consumed(payment_id):
            raise PaymentAlreadyConsumedError(payment_id.value)
        return ConsumptionRef.for_payment(payment_id)
