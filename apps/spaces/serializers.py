from rest_framework import serializers
from .models import Space, Participant


class SpaceSerializer(serializers.ModelSerializer):
    """Main serializer for spaces."""

    transaction_count = serializers.SerializerMethodField()

    class Meta:
        model = Space
        fields = [
            'id',
            'name',
            'description',
            'transaction_count',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_transaction_count(self, obj):
        """Number of active transactions in the space."""
        return obj.transactions.filter(is_deleted=False).count()


class SpaceCreateSerializer(serializers.Serializer):
    """Validate input for creating a space."""

    name = serializers.CharField(max_length=200)
    id = serializers.SlugField(max_length=64, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)


class ParticipantSerializer(serializers.ModelSerializer):
    """Serializer for participants."""

    class Meta:
        model = Participant
        fields = ['id', 'name', 'is_archived', 'created_at', 'updated_at']
        read_only_fields = ['is_archived', 'created_at', 'updated_at']


class ParticipantCreateSerializer(serializers.Serializer):
    """Validate input for creating a participant."""

    name = serializers.CharField(max_length=100)
    id = serializers.SlugField(max_length=64, required=False, allow_blank=True)


class ParticipantFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for participant listing.

    Query Parameters:
        include_archived (bool): Include archived participants
    """

    include_archived = serializers.BooleanField(required=False, default=False)
