"""Django project configuration.

The Celery application is imported as soon as Django starts so the shared
task registry is populated.
"""

from .celery import app as celery_app

__all__ = ["celery_app"]
