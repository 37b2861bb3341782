"""App settings with defaults, overridable through ``settings.BOOKINGS``."""

from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "LOCK_TIMEOUT_MS": 3000,
    "EXPIRY_SWEEP_INTERVAL": 3600,
    "EXPIRY_SWEEP_JITTER": 60,
    "EXPIRY_SWEEP_BATCH_SIZE": 500,
    "EXPIRY_SWEEP_LOCK_TTL": 900,
    "NOTIFICATION_SINK": "bookings.services.notifications.CeleryNotificationSink",
    "NOTIFICATION_DELIVERY_SINK": "bookings.services.notifications.LoggingNotificationSink",
}


def get_setting(name: str) -> Any:
    if name not in DEFAULTS:
        raise KeyError(f"Unknown bookings setting: {name}")
    overrides = getattr(settings, "BOOKINGS", {}) or {}
    return overrides.get(name, DEFAULTS[name])
