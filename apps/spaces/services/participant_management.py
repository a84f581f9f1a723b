"""
Participant management service.

Participants are never deleted, only archived, because historical
transactions still reference their id.
"""

import logging

from django.db import transaction
from django.utils.text import slugify

from apps.spaces.models import Participant, PRIMARY_PARTICIPANT_ID

from .exceptions import ParticipantNotFoundError, PrimaryParticipantError


logger = logging.getLogger(__name__)


def _unique_participant_id(base: str) -> str:
    candidate = base
    suffix = 2
    while Participant.objects.filter(id=candidate).exists():
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


@transaction.atomic
def create_participant(*, name: str, participant_id: str = '') -> Participant:
    """
    Create a participant.

    When no id is supplied, one is derived from the name. Collisions get a
    numeric suffix (``alice``, ``alice-2``, ...).

    Args:
        name: Display name
        participant_id: Optional explicit id

    Returns:
        Created Participant instance

    Raises:
        PrimaryParticipantError: If the id is reserved for the primary user
    """
    base = participant_id or slugify(name) or 'participant'
    if base == PRIMARY_PARTICIPANT_ID:
        raise PrimaryParticipantError(
            f"'{PRIMARY_PARTICIPANT_ID}' is reserved for the primary user"
        )

    participant = Participant.objects.create(
        id=_unique_participant_id(base),
        name=name,
    )
    logger.info("Created participant %s", participant.id)
    return participant


def get_participant_by_id(*, participant_id: str) -> Participant:
    """
    Get a participant by id.

    Raises:
        ParticipantNotFoundError: If the participant doesn't exist
    """
    try:
        return Participant.objects.get(id=participant_id)
    except Participant.DoesNotExist:
        raise ParticipantNotFoundError(f"Participant '{participant_id}' not found")


@transaction.atomic
def archive_participant(*, participant_id: str) -> Participant:
    """
    Archive a participant.

    Raises:
        ParticipantNotFoundError: If the participant doesn't exist
        PrimaryParticipantError: If trying to archive the primary user
    """
    if participant_id == PRIMARY_PARTICIPANT_ID:
        raise PrimaryParticipantError("The primary user cannot be archived")

    participant = get_participant_by_id(participant_id=participant_id)
    if not participant.is_archived:
        participant.archive()
    return participant


@transaction.atomic
def restore_participant(*, participant_id: str) -> Participant:
    participant = get_participant_by_id(participant_id=participant_id)
    if participant.is_archived:
        participant.restore()
    return participant


def list_participants(*, include_archived: bool = False):
    """Return participants, archived ones only when asked for."""
    queryset = Participant.objects.all()
    if not include_archived:
        queryset = queryset.filter(is_archived=False)
    return queryset
