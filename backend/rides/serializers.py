from rest_framework import serializers
from django.contrib.auth import get_user_model

from accounts.serializers import UserBasicSerializer
from common.utils import Box, Point
from .models import Dispatch, RideRequest

User = get_user_model()


class PointSerializer(serializers.Serializer):
    x = serializers.FloatField()
    y = serializers.FloatField()

    def to_internal_value(self, data):
        values = super().to_internal_value(data)
        return Point(values["x"], values["y"])


class DispatchAreaSerializer(serializers.Serializer):
    """Area and time for a dispatch call"""
    northwest = PointSerializer()
    southeast = PointSerializer()
    at = serializers.DateTimeField(required=False)

    def validate(self, data):
        data["box"] = Box(data.pop("northwest"), data.pop("southeast"))
        return data


class DispatchSerializer(serializers.ModelSerializer):
    """An assignment as seen by the orchestration layer"""
    request_id = serializers.IntegerField(read_only=True)
    driver_id = serializers.IntegerField(read_only=True)
    location = serializers.SerializerMethodField()

    class Meta:
        model = Dispatch
        fields = ['request_id', 'driver_id', 'location', 'dispatched_at']
        read_only_fields = fields

    def get_location(self, obj):
        return {"x": obj.car_x, "y": obj.car_y}


class RideRequestSerializer(serializers.ModelSerializer):
    """Serializer for Ride Requests"""
    client = UserBasicSerializer(read_only=True)
    state = serializers.CharField(read_only=True)

    class Meta:
        model = RideRequest
        fields = ['id', 'client', 'source', 'destination', 'requested_at', 'state']
        read_only_fields = fields


class RideRequestCreateSerializer(serializers.Serializer):
    """Serializer for creating ride requests"""
    client_id = serializers.IntegerField()
    source = serializers.CharField(max_length=100)
    destination = serializers.CharField(max_length=100, required=False, allow_null=True, allow_blank=True)
    at = serializers.DateTimeField(required=False)

    def validate_client_id(self, value):
        if not User.objects.filter(id=value, role=User.ROLE_CLIENT).exists():
            raise serializers.ValidationError("Unknown client")
        return value


class PickupSerializer(serializers.Serializer):
    """Serializer for pickup confirmations"""
    driver_id = serializers.IntegerField()
    client_id = serializers.IntegerField()
    at = serializers.DateTimeField()


class WasDispatchedQuerySerializer(serializers.Serializer):
    driver_id = serializers.IntegerField()
    client_id = serializers.IntegerField()
    before = serializers.DateTimeField()
