from django.apps import AppConfig


class BookingsConfig(AppConfig):
    name = "bookings"
    verbose_name = "Class bookings"
    default_auto_field = "django.db.models.BigAutoField"
