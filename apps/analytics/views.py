from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes
from .analytics import LedgerAnalytics
from .serializers import (
    # Input serializers
    SpaceQuerySerializer,
    SuggestionQuerySerializer,
    # Response serializers
    BalancesResponseSerializer,
    SuggestionsResponseSerializer,
    HealthResponseSerializer,
    DashboardResponseSerializer,
    ErrorSerializer,
)
from .exceptions import SpaceNotFoundError, InvalidScopeError


SPACE_PARAMETER = OpenApiParameter(
    'space', OpenApiTypes.STR, description='Space id (all spaces when omitted)'
)


@extend_schema(
    parameters=[SPACE_PARAMETER],
    responses={
        200: BalancesResponseSerializer,
        404: ErrorSerializer,
    },
    description="Net balance of the primary user against every participant.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def balances(request):
    """Get net balances - thin HTTP handler."""
    query_serializer = SpaceQuerySerializer(data=request.query_params)
    query_serializer.is_valid(raise_exception=True)
    params = query_serializer.validated_data

    try:
        data = LedgerAnalytics.space_balances(space_id=params.get('space'))
    except SpaceNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response(data)


@extend_schema(
    parameters=[
        SPACE_PARAMETER,
        OpenApiParameter('scope', OpenApiTypes.STR, description="Netting scope: 'me' or 'everyone'", default='me'),
        OpenApiParameter('threshold', OpenApiTypes.INT, description='Materiality threshold in minor units'),
    ],
    responses={
        200: SuggestionsResponseSerializer,
        400: ErrorSerializer,
        404: ErrorSerializer,
    },
    description="Suggest a short list of payments that net out outstanding debts.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def settlement_suggestions(request):
    """Get settlement suggestions - thin HTTP handler."""
    query_serializer = SuggestionQuerySerializer(data=request.query_params)
    query_serializer.is_valid(raise_exception=True)
    params = query_serializer.validated_data

    try:
        data = LedgerAnalytics.settlement_suggestions(
            space_id=params.get('space'),
            scope=params.get('scope'),
            threshold=params.get('threshold'),
        )
    except SpaceNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
    except InvalidScopeError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    return Response(data)


@extend_schema(
    parameters=[SPACE_PARAMETER],
    responses={
        200: HealthResponseSerializer,
        404: ErrorSerializer,
    },
    description="Read-only integrity report: orphaned links, missing categories, drifted summaries.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def data_health(request):
    """Get the data-health report - thin HTTP handler."""
    query_serializer = SpaceQuerySerializer(data=request.query_params)
    query_serializer.is_valid(raise_exception=True)
    params = query_serializer.validated_data

    try:
        data = LedgerAnalytics.data_health(space_id=params.get('space'))
    except SpaceNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response(data)


@extend_schema(
    parameters=[SPACE_PARAMETER],
    responses={
        200: DashboardResponseSerializer,
        404: ErrorSerializer,
    },
    description="Dashboard summary: balances, suggestions and health issue count.",
    tags=['analytics'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard(request):
    """Get dashboard summary - thin HTTP handler."""
    query_serializer = SpaceQuerySerializer(data=request.query_params)
    query_serializer.is_valid(raise_exception=True)
    params = query_serializer.validated_data

    try:
        data = LedgerAnalytics.dashboard(space_id=params.get('space'))
    except SpaceNotFoundError as e:
        return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

    return Response(data)
