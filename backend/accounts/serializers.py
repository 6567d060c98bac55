from rest_framework import serializers
from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """Lite user info embedded in ride and dispatch payloads."""

    class Meta:
        model = User
        fields = ["id", "username", "role"]
        read_only_fields = fields
