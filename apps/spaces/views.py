from rest_framework import viewsets, status, mixins
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination

from .models import Space, Participant
from .serializers import (
    SpaceSerializer,
    SpaceCreateSerializer,
    ParticipantSerializer,
    ParticipantCreateSerializer,
    ParticipantFilterSerializer,
)
from apps.spaces.services import (
    create_space,
    create_participant,
    archive_participant,
    restore_participant,
    list_participants,
    # Exceptions
    DuplicateSpaceError,
    ParticipantNotFoundError,
    PrimaryParticipantError,
)


class SpacePagination(PageNumberPagination):
    """Custom pagination for spaces and participants."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 200


class SpaceViewSet(mixins.ListModelMixin,
                   mixins.RetrieveModelMixin,
                   mixins.UpdateModelMixin,
                   viewsets.GenericViewSet):
    """
    ViewSet for Space operations.

    Spaces are never deleted; their transactions keep referencing them.

    list: Get all spaces
    create: Create a new space
    retrieve: Get a specific space
    update: Rename / describe a space
    """

    queryset = Space.objects.all()
    serializer_class = SpaceSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = SpacePagination

    def create(self, request, *args, **kwargs):
        """Create a new space."""
        serializer = SpaceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            space = create_space(
                name=serializer.validated_data['name'],
                space_id=serializer.validated_data.get('id', ''),
                description=serializer.validated_data.get('description', ''),
            )
        except DuplicateSpaceError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(SpaceSerializer(space).data, status=status.HTTP_201_CREATED)


class ParticipantViewSet(mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         mixins.UpdateModelMixin,
                         viewsets.GenericViewSet):
    """
    ViewSet for Participant operations.

    Participants are archived instead of deleted.

    list: Get participants (archived excluded unless ?include_archived=true)
    create: Create a participant
    retrieve: Get a participant
    update: Rename a participant
    archive / restore: Toggle archival
    """

    queryset = Participant.objects.all()
    serializer_class = ParticipantSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = SpacePagination

    def get_queryset(self):
        if self.action != 'list':
            return super().get_queryset()

        filter_serializer = ParticipantFilterSerializer(data=self.request.query_params)
        filter_serializer.is_valid(raise_exception=True)
        return list_participants(
            include_archived=filter_serializer.validated_data['include_archived']
        )

    def create(self, request, *args, **kwargs):
        """Create a participant."""
        serializer = ParticipantCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            participant = create_participant(
                name=serializer.validated_data['name'],
                participant_id=serializer.validated_data.get('id', ''),
            )
        except PrimaryParticipantError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(ParticipantSerializer(participant).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def archive(self, request, pk=None):
        """Archive a participant."""
        try:
            participant = archive_participant(participant_id=pk)
        except ParticipantNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)
        except PrimaryParticipantError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(ParticipantSerializer(participant).data)

    @action(detail=True, methods=['post'])
    def restore(self, request, pk=None):
        """Restore an archived participant."""
        try:
            participant = restore_participant(participant_id=pk)
        except ParticipantNotFoundError as e:
            return Response({'error': str(e)}, status=status.HTTP_404_NOT_FOUND)

        return Response(ParticipantSerializer(participant).data)
