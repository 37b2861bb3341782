"""Celery tasks for the bookings app.

The expiry sweep is driven by Celery beat (see config/celery.py). Beat fires
``schedule_expiry_sweep``, which enqueues the actual sweep with a random
delay so several deployments do not hit the database in lockstep. The sweep
holds a cache lock while it runs, so a new one never starts while another is
in flight.
"""

import logging
import random
from typing import Any
from uuid import uuid4

from celery import shared_task
from django.core.cache import cache

from bookings.conf import get_setting
from bookings.services.expiry import ExpirySweeper
from bookings.services.notifications import get_notification_sink
from bookings.stores import DjangoLedgerStore

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "bookings:expiry-sweep:lock"


def run_expiry_sweep() -> int:
    """Expire lapsed memberships now; returns how many were expired."""
    return ExpirySweeper(DjangoLedgerStore()).run()


@shared_task(name="bookings.schedule_expiry_sweep")
def schedule_expiry_sweep() -> float:
    delay = random.uniform(0, float(get_setting("EXPIRY_SWEEP_JITTER")))
    expire_lapsed_memberships.apply_async(countdown=delay)
    return delay


@shared_task(name="bookings.expire_lapsed_memberships")
def expire_lapsed_memberships() -> dict[str, Any]:
    token = uuid4().hex
    if not cache.add(SWEEP_LOCK_KEY, token, timeout=get_setting("EXPIRY_SWEEP_LOCK_TTL")):
        logger.info("Expiry sweep already in flight, skipping")
        return {"expired": 0, "skipped": True}

    try:
        expired = run_expiry_sweep()
    finally:
        if cache.get(SWEEP_LOCK_KEY) == token:
            cache.delete(SWEEP_LOCK_KEY)

    return {"expired": expired, "skipped": False}


@shared_task(name="bookings.deliver_notification", ignore_result=True)
def deliver_notification(recipient: int, template: str, context: dict[str, Any]) -> None:
    get_notification_sink("NOTIFICATION_DELIVERY_SINK").notify(recipient, template, context)
