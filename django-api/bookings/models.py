"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/models.py.
User ids are plain integers: identity is owned by the authentication
collaborator, not by this app.
"""

from django.db import models
from django.db.models import Q


class StudioClass(models.Model):
    """Persistence model for a bookable class."""

    id = models.BigAutoField(primary_key=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    instructor = models.CharField(max_length=255, blank=True, default="")
    day = models.CharField(max_length=32, blank=True, default="")
    time = models.CharField(max_length=32, blank=True, default="")
    duration_minutes = models.PositiveIntegerField(default=60)
    capacity = models.PositiveIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "studio_classes"
        constraints = [
            models.CheckConstraint(
                condition=Q(capacity__gte=1), name="studio_class_capacity_positive"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.day} {self.time})"


class Payment(models.Model):
    """Verified payment facts written by the payment gateway flow."""

    class Status(models.TextChoices):
        CREATED = "created", "Created"
        SUCCESS = "success", "Success"
        FAILED = "failed", "Failed"

    id = models.BigAutoField(primary_key=True)
    user_id = models.BigIntegerField(db_index=True)
    status = models.CharField(
        max_length=16, choices=Status.choices, default=Status.CREATED
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="AUD")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payments"

    def __str__(self) -> str:
        return f"Payment {self.pk} ({self.status})"


class Membership(models.Model):
    """Persistence model for memberships."""

    class Kind(models.TextChoices):
        METERED = "metered", "Metered"
        UNLIMITED = "unlimited", "Unlimited"

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        EXPIRED = "expired", "Expired"

    id = models.BigAutoField(primary_key=True)
    user_id = models.BigIntegerField()
    kind = models.CharField(max_length=16, choices=Kind.choices)
    package = models.CharField(max_length=32, blank=True, default="")
    credits = models.IntegerField()
    status = models.CharField(
        max_length=16, choices=Status.choices, default=Status.ACTIVE
    )
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField()
    payment = models.OneToOneField(
        Payment,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="membership",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "memberships"
        indexes = [
            models.Index(
                fields=["user_id", "status", "ends_at"], name="membership_user_status_end"
            ),
            models.Index(fields=["status", "ends_at"], name="membership_status_end"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(credits__gte=-1), name="membership_credits_valid"
            ),
        ]

    def __str__(self) -> str:
        return f"Membership {self.pk} ({self.kind}, {self.status})"


class Booking(models.Model):
    """Persistence model for bookings. Rows are never deleted."""

    class Status(models.TextChoices):
        CONFIRMED = "confirmed", "Confirmed"
        CANCELLED = "cancelled", "Cancelled"
        COMPLETED = "completed", "Completed"

    id = models.BigAutoField(primary_key=True)
    user_id = models.BigIntegerField()
    studio_class = models.ForeignKey(
        StudioClass, on_delete=models.PROTECT, related_name="bookings"
    )
    status = models.CharField(
        max_length=16, choices=Status.choices, default=Status.CONFIRMED
    )
    membership = models.ForeignKey(
        Membership,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="bookings",
    )
    payment = models.OneToOneField(
        Payment,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="booking",
    )
    cancellation_reason = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "bookings"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["studio_class", "status"], name="booking_class_status"),
            models.Index(fields=["user_id", "-created_at"], name="booking_user_created"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user_id", "studio_class"],
                condition=Q(status="confirmed"),
                name="booking_one_confirmed_per_user_class",
            ),
            models.CheckConstraint(
                condition=Q(membership__isnull=True) | Q(payment__isnull=True),
                name="booking_single_consumption_ref",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking {self.pk} ({self.status})"
