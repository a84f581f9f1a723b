"""
Spaces app services layer.

Services contain business logic and orchestrate operations across models.
"""

from .exceptions import (
    SpacesServiceError,
    SpaceNotFoundError,
    DuplicateSpaceError,
    ParticipantNotFoundError,
    PrimaryParticipantError,
)

from .space_management import (
    create_space,
    get_space_by_id,
    list_spaces,
)

from .participant_management import (
    create_participant,
    get_participant_by_id,
    archive_participant,
    restore_participant,
    list_participants,
)


__all__ = [
    # Exceptions
    'SpacesServiceError',
    'SpaceNotFoundError',
    'DuplicateSpaceError',
    'ParticipantNotFoundError',
    'PrimaryParticipantError',

    # Space Management
    'create_space',
    'get_space_by_id',
    'list_spaces',

    # Participant Management
    'create_participant',
    'get_participant_by_id',
    'archive_participant',
    'restore_participant',
    'list_participants',
]
