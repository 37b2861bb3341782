"""Settings for the studio bookings service.

Everything environment specific is read from environment variables; the
defaults suit local development (SQLite, a local Redis for the cache and the
Celery broker). The test suite swaps in an in-memory cache.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "replace-me-in-production")

DEBUG = _env_bool("DJANGO_DEBUG")

ALLOWED_HOSTS: list[str] = os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "rest_framework",
    "bookings",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": os.environ.get("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.environ.get("DB_NAME", BASE_DIR / "db.sqlite3"),
        "USER": os.environ.get("DB_USER", ""),
        "PASSWORD": os.environ.get("DB_PASSWORD", ""),
        "HOST": os.environ.get("DB_HOST", ""),
        "PORT": os.environ.get("DB_PORT", ""),
    }
}

REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")

# Shared across processes: the expiry sweep overlap lock lives here.
CACHES = {
    "default": {
        "BACKEND": os.environ.get(
            "CACHE_BACKEND", "django.core.cache.backends.redis.RedisCache"
        ),
        "LOCATION": os.environ.get("CACHE_LOCATION", f"{REDIS_URL}/1"),
    }
}

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
}

BOOKINGS = {
    "LOCK_TIMEOUT_MS": _env_int("BOOKINGS_LOCK_TIMEOUT_MS", 3000),
    "EXPIRY_SWEEP_INTERVAL": _env_int("BOOKINGS_EXPIRY_SWEEP_INTERVAL", 3600),
    "EXPIRY_SWEEP_JITTER": _env_int("BOOKINGS_EXPIRY_SWEEP_JITTER", 60),
    "EXPIRY_SWEEP_BATCH_SIZE": _env_int("BOOKINGS_EXPIRY_SWEEP_BATCH_SIZE", 500),
    "EXPIRY_SWEEP_LOCK_TTL": _env_int("BOOKINGS_EXPIRY_SWEEP_LOCK_TTL", 900),
    "NOTIFICATION_SINK": os.environ.get(
        "BOOKINGS_NOTIFICATION_SINK",
        "bookings.services.notifications.CeleryNotificationSink",
    ),
    "NOTIFICATION_DELIVERY_SINK": os.environ.get(
        "BOOKINGS_NOTIFICATION_DELIVERY_SINK",
        "bookings.services.notifications.LoggingNotificationSink",
    ),
}

# Celery configuration (broker and result backend come from the environment)
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", f"{REDIS_URL}/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", f"{REDIS_URL}/0")
CELERY_TASK_ALWAYS_EAGER = _env_bool("CELERY_TASK_ALWAYS_EAGER")
CELERY_TIMEZONE = TIME_ZONE

CELERY_BEAT_SCHEDULE = {
    # Expire lapsed memberships; the task itself adds jitter
    "schedule-expiry-sweep": {
        "task": "bookings.schedule_expiry_sweep",
        "schedule": float(BOOKINGS["EXPIRY_SWEEP_INTERVAL"]),
        "options": {"expires": float(BOOKINGS["EXPIRY_SWEEP_INTERVAL"])},
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.environ.get("DJANGO_LOG_LEVEL", "WARNING"),
    },
    "loggers": {
        "bookings": {
            "level": os.environ.get("BOOKINGS_LOG_LEVEL", "INFO"),
        },
    },
}
