import logging

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.exceptions import ConnectivityError, UnknownPlaceError
from .serializers import (
    DispatchAreaSerializer,
    DispatchSerializer,
    PickupSerializer,
    RideRequestCreateSerializer,
    RideRequestSerializer,
    WasDispatchedQuerySerializer,
)

# Import from services layer
from services.matching import dispatch_area
from services.ride_management import create_ride_request, record_pickup, was_dispatched

logger = logging.getLogger(__name__)


def _store_unavailable(exc):
    logger.error("Store unavailable: %s", exc)
    return Response(
        {'error': 'Store unavailable, nothing was recorded'},
        status=status.HTTP_503_SERVICE_UNAVAILABLE
    )


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def create_request(request):
    """Create a ride request for a client from a named place"""
    serializer = RideRequestCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        ride = create_ride_request(
            client_id=data['client_id'],
            source=data['source'],
            at=data.get('at'),
            destination=data.get('destination') or None,
        )
    except UnknownPlaceError as exc:
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    except ConnectivityError as exc:
        return _store_unavailable(exc)

    return Response(RideRequestSerializer(ride).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def dispatch_drivers(request):
    """Dispatch available drivers to open requests inside an area"""
    serializer = DispatchAreaSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    box = serializer.validated_data['box']
    at = serializer.validated_data.get('at') or timezone.now()
    result = dispatch_area(box, at)

    if not result.success:
        status_code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if result.error_code == 'connectivity'
            else status.HTTP_409_CONFLICT
        )
        return Response(
            {'error': result.message, 'error_code': result.error_code},
            status=status_code
        )

    return Response({
        'message': result.message,
        'dispatched_at': at,
        'assignments': DispatchSerializer(result.assignments, many=True).data,
    }, status=status.HTTP_200_OK)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def pickup(request):
    """Confirm that a dispatched driver picked up their client"""
    serializer = PickupSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        recorded = record_pickup(data['driver_id'], data['client_id'], data['at'])
    except ConnectivityError as exc:
        return _store_unavailable(exc)

    if recorded:
        return Response({'recorded': True}, status=status.HTTP_201_CREATED)

    return Response({
        'recorded': False,
        'message': 'Pickup already recorded or no matching dispatch',
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dispatch_lookup(request):
    """Which request, if any, a driver was dispatched to for a client"""
    serializer = WasDispatchedQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        request_id = was_dispatched(data['driver_id'], data['client_id'], data['before'])
    except ConnectivityError as exc:
        return _store_unavailable(exc)

    return Response({'request_id': request_id}, status=status.HTTP_200_OK)
