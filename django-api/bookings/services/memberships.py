"""Membership purchase and lookup."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import partial

from django.utils import timezone

from bookings.domain import Credits, Membership, MembershipKind, PaymentId, UserId
from bookings.domain.errors import (
    InvalidPackageError,
    PaymentAlreadyConsumedError,
    PaymentNotFoundError,
    PaymentNotSuccessfulError,
    PaymentOwnershipMismatchError,
)
from bookings.services.notifications import (
    MEMBERSHIP_PURCHASED,
    NotificationSink,
    get_notification_sink,
    notify_safely,
)
from bookings.stores.interfaces import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Package:
    kind: MembershipKind
    credits: Credits
    validity: timedelta


PACKAGES: dict[str, Package] = {
    "drop_in": Package(MembershipKind.METERED, Credits(1), timedelta(days=1)),
    "monthly": Package(MembershipKind.UNLIMITED, Credits.unlimited(), timedelta(days=30)),
    "quarterly": Package(MembershipKind.UNLIMITED, Credits.unlimited(), timedelta(days=90)),
}


class MembershipService:
    """Service for turning payments into memberships and inspecting them."""

    def __init__(
        self,
        store: LedgerStore,
        notifier: NotificationSink | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._store = store
        self._notifier = notifier or get_notification_sink()
        self._clock = clock

    def purchase(self, user_id: UserId, payment_id: PaymentId, package: str) -> Membership:
        """Create a membership paid for by a successful payment.

        One payment buys at most one membership and is then unusable for a
        pay-per-class booking.

        Raises:
            InvalidPackageError: If the package name is unknown.
            PaymentNotFoundError: If the payment does not exist.
            PaymentOwnershipMismatchError: If the payment belongs to another user.
            PaymentNotSuccessfulError: If the payment has not succeeded.
            PaymentAlreadyConsumedError: If the payment was already used.
        """
        plan = PACKAGES.get(package)
        if plan is None:
            raise InvalidPackageError(package)

        with self._store.unit_of_work() as uow:
            payment = uow.lock_payment(payment_id)
            if payment is None:
                raise PaymentNotFoundError(payment_id.value)
            if payment.user_id != user_id:
                raise PaymentOwnershipMismatchError(payment_id.value)
            if not payment.is_successful:
                raise PaymentNotSuccessfulError(payment_id.value)
            if uow.payment_is_consumed(payment_id):
                raise PaymentAlreadyConsumedError(payment_id.value)

            starts_at = self._clock()
            membership = uow.insert_membership(
                user_id=user_id,
                kind=plan.kind,
                package=package,
                credits=plan.credits,
                starts_at=starts_at,
                ends_at=starts_at + plan.validity,
                payment_id=payment_id,
            )
            uow.on_commit(
                partial(
                    notify_safely,
                    self._notifier,
                    user_id.value,
                    MEMBERSHIP_PURCHASED,
                    {
                        "membership_id": membership.id.value,
                        "package": package,
                        "amount": payment.amount,
                        "currency": payment.currency,
                        "ends_at": membership.ends_at.isoformat(),
                    },
                )
            )

        logger.info(
            "Membership %s (%s) created for user %s from payment %s",
            membership.id,
            package,
            user_id,
            payment_id,
        )
        return membership

    def current_entitlement(self, user_id: UserId) -> Membership | None:
        """Return the membership the next booking would draw on, without consuming it."""
        return self._store.find_next_membership(user_id, self._clock())

    def list_memberships(self, user_id: UserId) -> list[Membership]:
        return self._store.list_memberships(user_id)
