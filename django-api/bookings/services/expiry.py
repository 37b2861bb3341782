"""Expiry sweeper: flips lapsed memberships to expired.

Runs in batches, one unit of work per batch. Rows a booking is consuming at
the same moment are skipped (they are locked); that booking notices the
lapse itself and the next sweep picks up whatever is left.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from django.utils import timezone

from bookings.conf import get_setting
from bookings.stores.interfaces import LedgerStore

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        store: LedgerStore,
        batch_size: int | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._store = store
        self._batch_size = batch_size or get_setting("EXPIRY_SWEEP_BATCH_SIZE")
        self._clock = clock

    def run(self) -> int:
        """Expire every active membership whose end time has passed.

        Idempotent: expired rows are never selected again.

        Returns:
            Number of memberships expired by this run.
        """
        now = self._clock()
        total = 0
        while True:
            with self._store.unit_of_work() as uow:
                ids = uow.lock_lapsed_membership_ids(now, self._batch_size)
                expired = uow.expire_memberships(ids)
            total += expired
            if len(ids) < self._batch_size or expired == 0:
                break

        if total:
            logger.info("Expired %d memberships", total)
        return total
