"""
Space management service.

Handles creation and lookup of ledger spaces.
"""

import logging

from django.db import transaction
from django.utils.text import slugify

from apps.spaces.models import Space

from .exceptions import DuplicateSpaceError, SpaceNotFoundError


logger = logging.getLogger(__name__)


@transaction.atomic
def create_space(*, name: str, space_id: str = '', description: str = '') -> Space:
    """
    Create a new space.

    Args:
        name: Human readable name
        space_id: Optional slug; derived from the name when empty
        description: Optional description

    Returns:
        Created Space instance

    Raises:
        DuplicateSpaceError: If a space with the same id exists
    """
    space_id = space_id or slugify(name)
    if not space_id:
        raise DuplicateSpaceError("Cannot derive a space id from an empty name")

    if Space.objects.filter(id=space_id).exists():
        raise DuplicateSpaceError(f"Space '{space_id}' already exists")

    space = Space.objects.create(id=space_id, name=name, description=description)
    logger.info("Created space %s", space.id)
    return space


def get_space_by_id(*, space_id: str) -> Space:
    """
    Get a space by id.

    Raises:
        SpaceNotFoundError: If the space doesn't exist
    """
    try:
        return Space.objects.get(id=space_id)
    except Space.DoesNotExist:
        raise SpaceNotFoundError(f"Space '{space_id}' not found")


def list_spaces():
    return Space.objects.all()
