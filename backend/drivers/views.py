from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from common.exceptions import ConnectivityError
from common.utils import Point
from drivers import services
from drivers.serializers import AvailabilitySerializer, DeclareAvailableSerializer

User = get_user_model()


class DeclareAvailableView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, driver_id):
        if not User.objects.filter(id=driver_id, role=User.ROLE_DRIVER).exists():
            return Response({"error": "Driver not found"}, status=404)

        serializer = DeclareAvailableSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            declaration = services.declare_available(
                driver_id,
                data.get("at") or timezone.now(),
                Point(data["x"], data["y"]),
            )
        except ConnectivityError:
            return Response({"error": "Store unavailable, nothing was recorded"}, status=503)

        return Response(AvailabilitySerializer(declaration).data, status=201)
