from rest_framework import serializers
from drivers.models import Availability


class AvailabilitySerializer(serializers.ModelSerializer):
    """
    Availability declaration as stored
    """
    driver_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Availability
        fields = ["id", "driver_id", "declared_at", "x", "y"]
        read_only_fields = fields


class DeclareAvailableSerializer(serializers.Serializer):
    """
    Serializer for a driver declaring availability at a location.
    """
    at = serializers.DateTimeField(required=False)
    x = serializers.FloatField()
    y = serializers.FloatField()
