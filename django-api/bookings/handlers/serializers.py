"""Serializers for request input and for transforming domain models to API responses."""

from rest_framework import serializers

from bookings.services.memberships import PACKAGES


class BookingCreateSerializer(serializers.Serializer):
    class_id = serializers.IntegerField(min_value=1)
    payment_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(
        max_length=500, required=False, allow_blank=True, default=""
    )


class MembershipPurchaseSerializer(serializers.Serializer):
    package = serializers.ChoiceField(choices=sorted(PACKAGES))
    payment_id = serializers.IntegerField(min_value=1)


class BookingSerializer(serializers.Serializer):
    """Serializer for Booking domain model."""

    id = serializers.IntegerField(source="id.value")
    class_id = serializers.IntegerField(source="class_id.value")
    status = serializers.CharField(source="status.value")
    membership_id = serializers.SerializerMethodField()
    payment_id = serializers.SerializerMethodField()
    cancellation_reason = serializers.CharField()
    created_at = serializers.DateTimeField()

    def get_membership_id(self, booking) -> int | None:
        return booking.membership_id.value if booking.membership_id else None

    def get_payment_id(self, booking) -> int | None:
        return booking.payment_id.value if booking.payment_id else None


class MembershipSerializer(serializers.Serializer):
    """Serializer for Membership domain model."""

    id = serializers.IntegerField(source="id.value")
    kind = serializers.CharField(source="kind.value")
    package = serializers.CharField()
    credits = serializers.IntegerField(source="credits.value")
    unlimited = serializers.BooleanField(source="credits.is_unlimited")
    status = serializers.CharField(source="status.value")
    starts_at = serializers.DateTimeField()
    ends_at = serializers.DateTimeField()


class ClassAvailabilitySerializer(serializers.Serializer):
    """Serializer for ClassAvailability domain model."""

    class_id = serializers.IntegerField(source="studio_class.id.value")
    name = serializers.CharField(source="studio_class.name")
    schedule = serializers.CharField(source="studio_class.schedule")
    capacity = serializers.IntegerField(source="studio_class.capacity.value")
    slots_booked = serializers.IntegerField()
    slots_left = serializers.IntegerField()
    is_full = serializers.BooleanField()
